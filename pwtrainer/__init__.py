"""Password Trainer credential-verification service."""
