"""Core constants: key structure, document field names and defaults.

Single source of truth for the persisted document shape ({key, value, app})
and for the hierarchical key format.
"""

# Delimiter for hierarchical config keys (a:b:c)
KEY_SEP = ":"

# Persisted document fields
DOC_KEY = "key"
DOC_VALUE = "value"
DOC_APP = "app"
# Storage identity; kept on the cached document, never written as a field
DOC_ID = "id"

STORED_FIELDS = (DOC_KEY, DOC_VALUE, DOC_APP)

# Defaults
DEFAULT_NAMESPACE = "docconf"
DEFAULT_APP = "general"
DEFAULT_TTL_MS = 60 * 60 * 1000
DEFAULT_COLLECTION = "config"
DEFAULT_SAVE_CONCURRENCY = 4

# Firestore
FIRESTORE_HOST = "firestore.googleapis.com"
FIRESTORE_DEFAULT_DATABASE = "(default)"
# Admin bearer token accepted by the Firestore emulator
FIRESTORE_EMULATOR_TOKEN = "owner"
