"""
Configuration Manager for the vault download gateway.

Handles environment file loading with precedence, payment processor
credentials, storage backend selection and configuration validation.
"""

import math
import os
from pathlib import Path
from typing import Dict, Any, Optional


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigManager:
    """
    Central configuration management for the download gateway.

    Provides:
    - Environment file loading with precedence
    - Payment processor credentials and timeouts
    - Storage backend selection and settings
    - Configuration validation
    """

    SUPPORTED_STORAGE_BACKENDS = ("local", "http", "s3")

    DEFAULTS = {
        'STRIPE_API_BASE': 'https://api.stripe.com',
        'VERIFICATION_TIMEOUT': '10',
        'STORAGE_BACKEND': 'local',
        'STORAGE_ROOT': './vault-data',
        'API_PORT': '8000',
        'ALLOWED_CORS': '*',
        'LOG_LEVEL': 'INFO',
    }

    def __init__(
        self,
        config_dir: Optional[str] = None,
        validate_storage: bool = False
    ):
        """
        Initialize ConfigManager.

        Args:
            config_dir: Directory containing environment files
            validate_storage: Whether to validate the storage backend settings
        """
        self.config_dir = Path(config_dir) if config_dir else Path.cwd()

        # Initialize internal state
        self._env_vars = {}

        # Load configuration
        self._load_env_files()

        # Perform validation
        self._validate_verification_timeout()
        self._validate_port()
        if validate_storage:
            self._validate_storage_config()

    def _load_env_files(self):
        """Load environment files with precedence: .env.prod > .env.staging > .env.dev > .env"""
        env = os.getenv('ENV', 'dev')

        # Define file precedence (load in order, higher precedence files override lower)
        env_files = ['.env']
        if env in ['dev', 'staging', 'prod']:
            env_files.append('.env.dev')
        if env in ['staging', 'prod']:
            env_files.append('.env.staging')
        if env == 'prod':
            env_files.append('.env.prod')

        for env_file in env_files:
            env_path = self.config_dir / env_file
            if env_path.exists():
                self._load_env_file(env_path)

    def _load_env_file(self, env_path: Path):
        """Load a single environment file into our internal env_vars dict."""
        try:
            with open(env_path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        self._env_vars[key.strip()] = value.strip()
        except OSError as e:
            raise ConfigValidationError(f"Unable to read environment file {env_path}: {e}")

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a raw setting: os.environ first, then env files, then built-in defaults."""
        value = os.getenv(key) or self._env_vars.get(key)
        if value:
            return value
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def _require(self, key: str) -> str:
        value = self.get(key)
        if not value:
            raise ConfigValidationError(f"{key} is required but not configured")
        return value

    def _validate_verification_timeout(self):
        """Validate the payment verification timeout."""
        raw = self.get('VERIFICATION_TIMEOUT')
        try:
            timeout = float(raw)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid VERIFICATION_TIMEOUT: '{raw}' - must be a number of seconds"
            )
        if not math.isfinite(timeout) or timeout <= 0:
            raise ConfigValidationError(
                f"Invalid VERIFICATION_TIMEOUT: '{raw}' - must be a finite number greater than zero"
            )

    def _validate_port(self):
        """Validate the API port."""
        raw = self.get('API_PORT')
        try:
            port = int(raw)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid API_PORT: '{raw}' - port must be a number between 1 and 65535"
            )
        if not (1 <= port <= 65535):
            raise ConfigValidationError(
                f"Invalid API_PORT: '{raw}' - port must be between 1 and 65535"
            )

    def _validate_storage_config(self):
        """Validate storage backend configuration."""
        backend = self.storage_backend
        if backend == 'http':
            self._require('STORAGE_URL')
        elif backend == 's3':
            self._require('S3_BUCKET')

    @property
    def stripe_secret_key(self) -> str:
        """Get the payment processor secret key."""
        return self._require('STRIPE_SECRET_KEY')

    @property
    def has_stripe_secret_key(self) -> bool:
        """Check whether a payment processor secret key is configured."""
        return bool(self.get('STRIPE_SECRET_KEY'))

    @property
    def stripe_api_base(self) -> str:
        """Get the payment processor base URL."""
        return self.get('STRIPE_API_BASE').rstrip('/')

    @property
    def verification_timeout(self) -> float:
        """Get the payment verification timeout in seconds."""
        return float(self.get('VERIFICATION_TIMEOUT'))

    @property
    def storage_backend(self) -> str:
        """Get the configured storage backend name."""
        backend = self.get('STORAGE_BACKEND').lower()
        if backend not in self.SUPPORTED_STORAGE_BACKENDS:
            raise ConfigValidationError(
                f"Unsupported STORAGE_BACKEND: '{backend}' - expected one of "
                f"{', '.join(self.SUPPORTED_STORAGE_BACKENDS)}"
            )
        return backend

    @property
    def storage_root(self) -> Path:
        """Get the root directory for the local storage backend."""
        return Path(self.get('STORAGE_ROOT'))

    @property
    def storage_url(self) -> str:
        """Get the base URL of the HTTP object storage service."""
        return self._require('STORAGE_URL').rstrip('/')

    @property
    def storage_api_key(self) -> Optional[str]:
        """Get the API key for the HTTP object storage service."""
        return self.get('STORAGE_API_KEY')

    @property
    def s3_settings(self) -> Dict[str, Any]:
        """Get S3-compatible bucket settings."""
        return {
            'bucket': self._require('S3_BUCKET'),
            'endpoint_url': self.get('S3_ENDPOINT_URL'),
            'region_name': self.get('S3_REGION'),
            'aws_access_key_id': self.get('AWS_ACCESS_KEY_ID'),
            'aws_secret_access_key': self.get('AWS_SECRET_ACCESS_KEY'),
        }

    @property
    def api_port(self) -> int:
        """Get the API listen port."""
        return int(self.get('API_PORT'))

    @property
    def allowed_cors(self) -> list:
        """Get the list of allowed CORS origins."""
        return [origin.strip() for origin in self.get('ALLOWED_CORS').split(',') if origin.strip()]

    @property
    def log_level(self) -> str:
        """Get the logging level name."""
        return self.get('LOG_LEVEL').upper()

    @property
    def environment(self) -> str:
        """Get the deployment environment name."""
        return os.getenv('ENV', 'dev')

    @property
    def version(self) -> str:
        """Get the reported service version."""
        from vault_backend import __version__
        return self.get('VAULT_VERSION', __version__)
