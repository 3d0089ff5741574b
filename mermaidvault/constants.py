APP_NAME = "MermaidVault"

DB_FILENAME = "mermaid-ui.db"

DEFAULT_COLLECTION_NAME = "Default Collection"
DEFAULT_COLLECTION_DESCRIPTION = "Your default collection of diagrams"

DIAGRAM_FILE_EXTENSIONS = (".mmd", ".mermaid")

# Largest value SQLite can bind as INTEGER.
SQLITE_MAX_INTEGER = 2**63 - 1
