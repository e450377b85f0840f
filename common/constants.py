SERVICE_NAME = "ec2-server"  # Logger service name

# Stack names per environment
STACK_NAMES = {
    "dev": "EC2-Dev",
    "stg": "EC2-Stg",
    "prod": "EC2-Prod",
}
STACK_DESCRIPTIONS = {
    "dev": "EC2 Instance - Development Environment",
    "stg": "EC2 Instance - Staging Environment",
    "prod": "EC2 Instance - Production Environment",
}
INSTANCE_SIZES = {
    "dev": "LARGE",
    "stg": "XLARGE",
    "prod": "XLARGE2",
}

DEFAULT_REGION = "us-west-2"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CPU_TYPE = "ARM64"
DEFAULT_SSH_PUB_KEY = " "

# Networking
VPC_CIDR = "10.0.0.0/16"
PUBLIC_SUBNET_CIDRS = ("10.0.0.0/24", "10.0.1.0/24")
ANY_IPV4_CIDR = "0.0.0.0/0"
SSH_PORT = 22
ALL_PROTOCOLS = "-1"

# IAM
EC2_SERVICE_PRINCIPAL = "ec2.amazonaws.com"
MANAGED_POLICY_ARN = "arn:aws:iam::aws:policy/{name}"
MANAGED_POLICY_NAMES = (
    "AmazonSSMManagedInstanceCore",
    "CloudWatchAgentServerPolicy",
)
RETENTION_POLICY_NAME = "RetentionPolicy"
RETENTION_POLICY_ACTION = "logs:PutRetentionPolicy"
POLICY_VERSION = "2012-10-17"

# Instance
INSTANCE_CLASS_ARM = "m7g"
INSTANCE_CLASS_X86 = "m5"
USER_DATA_FILE = "server.sh"
USER_DATA_DIR = "user_data"
SSH_USER = "ec2-user"

# Metadata key carrying the bound physical id of an adopted resource
PHYSICAL_ID_METADATA_KEY = "adoption:physicalId"

# Written next to the synthesized templates, consumed by `cdk import --resource-mapping`
IMPORT_MAPPING_SUFFIX = ".resource-mapping.json"
