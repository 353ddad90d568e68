import cfnflux

VERSION = cfnflux.__version__

# name under which the controller registers itself (tags, field owner, user agent)
CONTROLLER_NAME = "cfn-flux-controller"

# API group of the CloudFormationStack resource
API_GROUP = "cloudformation.contrib.fluxcd.io"
API_VERSION = f"{API_GROUP}/v1alpha1"
CLOUDFORMATION_STACK_KIND = "CloudFormationStack"
CLOUDFORMATION_STACK_FINALIZER = f"finalizers.{API_GROUP}"

# annotation used to request an out-of-band reconciliation
RECONCILE_REQUEST_ANNOTATION = "reconcile.fluxcd.io/requestedAt"

# event metadata key holding the source revision
EVENT_REVISION_METADATA_KEY = f"{API_GROUP}/revision"

DEFAULT_TEMPLATE_PATH = "template.yaml"

# source kinds that can hold a CloudFormation template
GIT_REPOSITORY_KIND = "GitRepository"
BUCKET_KIND = "Bucket"
OCI_REPOSITORY_KIND = "OCIRepository"
SOURCE_KINDS = (GIT_REPOSITORY_KIND, BUCKET_KIND, OCI_REPOSITORY_KIND)

# condition type and reasons
READY_CONDITION = "Ready"
CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

PROGRESSING_REASON = "Progressing"
SUCCEEDED_REASON = "Succeeded"
ARTIFACT_FAILED_REASON = "ArtifactFailed"
TEMPLATE_UPLOAD_FAILED_REASON = "TemplateUploadFailed"
CLOUDFORMATION_API_CALL_FAILED_REASON = "CloudFormationApiCallFailed"
CHANGE_SET_FAILED_REASON = "ChangeSetFailed"
STACK_ROLLBACK_FAILED_REASON = "StackRollbackFailed"
UNRECOVERABLE_STACK_FAILURE_REASON = "UnrecoverableStackFailure"
DEPENDENCY_NOT_READY_REASON = "DependencyNotReady"
UNEXPECTED_STATUS_REASON = "UnexpectedStatus"

# event types and severities
EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"
EVENT_SEVERITY_INFO = "info"
EVENT_SEVERITY_ERROR = "error"

# change set naming
CHANGE_SET_NAME_PREFIX = "flux"
MAX_CHANGE_SET_NAME_LENGTH = 128
CHANGE_SET_DESCRIPTION = "Managed by Flux"

# environment variable that overrides the host of artifact URLs during local development
ENV_SOURCE_CONTROLLER_LOCALHOST = "SOURCE_CONTROLLER_LOCALHOST"

TRUE_STRINGS = ("1", "true", "True")
LOG_LEVELS = ("debug", "info", "warn", "error", "warning")

DEFAULT_ENCODING = "utf-8"

# maximum number of boto3 connections per client
MAX_POOL_CONNECTIONS = 50
