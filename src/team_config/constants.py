"""Constants shared across team-config."""

# Trailing portion of a shared config file name
END_OF_TEAM_CONFIG = ".config.json"

# Trailing portion of a user-specific config file name
END_OF_USER_CONFIG = ".config.user.json"

END_OF_SCHEMA = ".schema.json"

INDENT = 4

# Vault account holding the secure properties of every config file
SECURE_ACCOUNT = "secure_config_props"

# Placeholder shown instead of secure values
SECURE_VALUE = "(secure value)"

SKIP_PROMPT = "- blank to skip: "

AUTH_TYPE_TOKEN = "token"

TOKEN_TYPE_APIML = "apimlAuthenticationToken"

JSON_SCHEMA = "https://json-schema.org/draft/2020-12/schema"

SCHEMA_VERSION = "1.0"
