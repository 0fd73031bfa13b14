"""
This module contains the configuration settings for the resque-pool manager.
It defines config file locations, environment variable names, supervisor timings
and the defaults used when building worker processes.
Values that must be re-read on every configuration load (the environment name
sources and the config path override) are stored here as variable *names* only.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file, never clobbering the real environment
load_dotenv(override=False)

#* --- Config File Lookup ---
DEFAULT_CONFIG_FILES = (
    pathlib.Path("config") / "resque-pool.yml",
    pathlib.Path("resque-pool.yml"),
)
CONFIG_PATH_ENV_VAR = "RESQUE_POOL_CONFIG"

#* --- Environment Name Sources (in precedence order) ---
ENVIRONMENT_ENV_VARS = ("RACK_ENV", "RAILS_ENV", "RESQUE_ENV")
# Name under which a host application may register a Rails-style module exposing `env`
AMBIENT_ENV_MODULE = "Rails"

#* --- Manager/Supervisor Settings ---
MASTER_SLEEP_INTERVAL = float(os.getenv("RESQUE_POOL_SLEEP_INTERVAL", "1"))
GRACEFUL_SHUTDOWN_TIMEOUT = float(os.getenv("RESQUE_POOL_SHUTDOWN_TIMEOUT", "10")) # seconds before force-killing
TERM_BEHAVIORS = ("immediate", "graceful")
TERM_BEHAVIOR = os.getenv("RESQUE_POOL_TERM_BEHAVIOR", "immediate").lower()
HANDLE_WINCH = os.getenv("RESQUE_POOL_HANDLE_WINCH", "False").lower() in ('true', '1', 't', 'yes', 'y')

#* --- Worker Process Settings ---
WORKER_COMMAND = os.getenv("RESQUE_POOL_WORKER_COMMAND", "rq worker")
QUEUES_ENV_VAR = "QUEUES"
# Exit code used by a forked child whose worker runner raised
WORKER_BOOT_ERROR = 1

#* --- Process Titles ---
APP_NAME = os.getenv("RESQUE_POOL_APP_NAME", pathlib.Path.cwd().name)
MANAGER_TITLE_PREFIX = "resque-pool-manager"
WORKER_TITLE_PREFIX = "resque-pool-worker"

#* --- Logging ---
LOG_FORMAT = '%(asctime)s - %(levelname)-8s - {role}[%(process)d] - [%(name)s] - %(message)s'
