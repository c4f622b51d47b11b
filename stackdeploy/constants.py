import os

import stackdeploy

# stackdeploy version
VERSION = stackdeploy.__version__

# root code folder
MODULE_MAIN_PATH = os.path.dirname(os.path.realpath(__file__))

# default host configuration directory holding the <profile>.env files
DEFAULT_CONFIG_DIR = os.path.expanduser("~/.stackdeploy")

# files picked up from the working directory if no explicit path is given
DEFAULT_TEMPLATE_FILE = "stack.yml"
DEFAULT_PARAMETERS_FILE = "parameters.json"

AWS_REGION_US_EAST_1 = "us-east-1"

# name of the service all clients are created for
CLOUDFORMATION_SERVICE = "cloudformation"

TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")
# strings with valid log levels for SD_LOG
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")

# trace log level, configurable via $SD_LOG
SD_LOG_TRACE = "trace"
TRACE_LOG_LEVELS = [SD_LOG_TRACE]

# capabilities the provisioning service may demand before creating a stack
CAPABILITY_IAM = "CAPABILITY_IAM"
CAPABILITY_NAMED_IAM = "CAPABILITY_NAMED_IAM"
CAPABILITY_AUTO_EXPAND = "CAPABILITY_AUTO_EXPAND"
CAPABILITIES = (CAPABILITY_IAM, CAPABILITY_NAMED_IAM, CAPABILITY_AUTO_EXPAND)

# stack names must start with a letter and contain only alphanumerics and hyphens
STACK_NAME_PATTERN = r"^[a-zA-Z][-a-zA-Z0-9]*$"
STACK_NAME_MAX_LENGTH = 128

# remote error codes of the CloudFormation API
ERROR_ALREADY_EXISTS = "AlreadyExistsException"
ERROR_INSUFFICIENT_CAPABILITIES = "InsufficientCapabilitiesException"
ERROR_VALIDATION = "ValidationError"
