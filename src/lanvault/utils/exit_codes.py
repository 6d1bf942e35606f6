"""
Exit codes for the lanvault CLI.

Semantic exit codes let scripts tell a wrong password from an unreachable peer
without parsing output.
"""

# Success
SUCCESS = 0

# General error (unspecified)
ERROR_GENERAL = 1

# Invalid arguments, or the vault already exists
ERROR_INVALID_ARGS = 2

# Wrong master password
ERROR_AUTH_FAILURE = 3

# Peer unreachable, handshake failed or request timed out
ERROR_NETWORK = 4

# Entry or vault not found
ERROR_NOT_FOUND = 5

# Vault is locked
ERROR_LOCKED = 6


def get_exit_code_name(code: int) -> str:
    """Get the name of an exit code for display purposes."""
    code_names = {
        SUCCESS: "SUCCESS",
        ERROR_GENERAL: "ERROR_GENERAL",
        ERROR_INVALID_ARGS: "ERROR_INVALID_ARGS",
        ERROR_AUTH_FAILURE: "ERROR_AUTH_FAILURE",
        ERROR_NETWORK: "ERROR_NETWORK",
        ERROR_NOT_FOUND: "ERROR_NOT_FOUND",
        ERROR_LOCKED: "ERROR_LOCKED",
    }
    return code_names.get(code, f"UNKNOWN({code})")


def get_exit_code_description(code: int) -> str:
    """Get a human-readable description of an exit code."""
    descriptions = {
        SUCCESS: "Command executed successfully",
        ERROR_GENERAL: "A general error occurred",
        ERROR_INVALID_ARGS: "Invalid arguments or vault already exists",
        ERROR_AUTH_FAILURE: "Wrong master password",
        ERROR_NETWORK: "Peer unreachable or did not answer in time",
        ERROR_NOT_FOUND: "Entry or vault not found",
        ERROR_LOCKED: "Vault is locked",
    }
    return descriptions.get(code, "Unknown error")
