"""
JSON schemas for configuration validation.
"""

AUTH_SCHEMA = {
    "oneOf": [
        {"type": "null"},
        {"type": "string"},
        {
            "type": "object",
            "properties": {
                "client_id": {"type": "string", "minLength": 1},
                "client_secret": {"type": "string", "minLength": 1},
            },
            "required": ["client_id", "client_secret"],
            "additionalProperties": False,
        },
    ]
}

CLIENT_SCHEMA = {
    "type": "object",
    "properties": {
        "service_id": {"type": ["string", "null"]},
        "auth": AUTH_SCHEMA,
        "api_url": {"type": "string", "pattern": "^https?://"},
        "api_token_url": {"type": "string", "pattern": "^https?://"},
        "vault_url": {"type": "string", "pattern": "^https?://"},
        "poll_interval": {"type": "number", "exclusiveMinimum": 0},
        "request_retry_count": {"type": "integer", "minimum": 0},
        "request_retry_delay": {"type": "number", "minimum": 0},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "auto_track": {"type": "boolean"},
        "additional_headers": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
    "additionalProperties": False,
}

LOGGING_SCHEMA = {
    "type": "object",
    "properties": {
        "level": {"type": "string", "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "format": {"type": "string", "enum": ["text", "json"]},
        "log_http": {"type": "boolean"},
        "log_events": {"type": "boolean"},
        "redact_secrets": {"type": "boolean"},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "automation-client configuration",
    "type": "object",
    "properties": {
        "client": CLIENT_SCHEMA,
        "logging": LOGGING_SCHEMA,
    },
    "additionalProperties": False,
}
