"""Constants for blob-propagator."""

# Environment variables
CONFIG_ENV_VAR = "BLOB_PROPAGATOR_CONFIG"
AZURE_CONNECTION_STRING_ENV_VAR = "AZURE_STORAGE_CONNECTION_STRING"
SWARM_POSTAGE_BATCH_ID_ENV_VAR = "SWARM_POSTAGE_BATCH_ID"

# Default file names (inside the working directory)
DEFAULT_CONFIG_FILE = "blob-propagator.yaml"
DEFAULT_STAGING_DIR = ".blob-propagator/staging"
DEFAULT_CATALOG_FILE = ".blob-propagator/catalog.db"

# Staged payload suffix
STAGED_FILE_SUFFIX = ".bin"

# EIP-4844 versioned hash prefix byte
VERSIONED_HASH_VERSION_KZG = 0x01

# Version
PROPAGATOR_VERSION = "0.1.0"
