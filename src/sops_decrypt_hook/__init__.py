"""
sops-decrypt-hook - export SOPS-encrypted secrets into a development shell.

Decrypts secret files with sops and turns their contents into validated
environment variables.

Features:
- hook: Print shell code for eval (bash, zsh, fish, dotenv, json)
- exec: Run a command with the secrets injected
- show: List exported names with masked values
- status: Check sops/age and the configured files

Supported formats: dotenv, json, yaml (flat), ini

Requires: sops
"""

__version__ = "0.1.0"
