"""
Configuration models for Hydra migration.

This module defines Pydantic models for the orchestrator, the SSH
transport, the destination-side restore commands and the hosting
provider. A MigrationConfig is built once at process start and passed
into the components that need it.
"""

import os
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hydra_migration.core.exceptions import ConfigurationError
from hydra_migration.utils.helpers import load_config_file

DEFAULT_STATE_DIR = "/var/lib/docker/containers"


class HostKeyPolicy(str, Enum):
    """How unknown SSH host keys are treated."""
    AUTO_ADD = "auto_add"
    WARNING = "warning"
    REJECT = "reject"


class ProviderType(str, Enum):
    """Hosting providers supported by the system."""
    AWS_SPOT = "aws_spot"
    SIGNAL = "signal"


class SSHConfig(BaseModel):
    """SSH connection settings for reaching a destination host."""
    username: Optional[str] = None
    port: int = 22
    password: Optional[str] = None
    key_filename: Optional[str] = None
    timeout: float = 30.0
    compress: bool = True
    look_for_keys: bool = True
    allow_agent: bool = True
    host_key_policy: HostKeyPolicy = HostKeyPolicy.AUTO_ADD

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError(f'Invalid port number: {v}')
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v


class RemoteConfig(BaseModel):
    """Where the archive lands on the destination and how it is restored there."""
    archive_dir: str = "/tmp"
    state_dir: str = DEFAULT_STATE_DIR
    restore_command: str = "hydra-migrate restore {archive} {dest}"
    resume_after_restore: bool = True
    resume_command: str = "docker start --checkpoint {checkpoint_name} {container_id}"

    @field_validator('restore_command')
    @classmethod
    def restore_command_placeholders(cls, v):
        for placeholder in ('{archive}', '{dest}'):
            if placeholder not in v:
                raise ValueError(f'restore_command must contain {placeholder}')
        return v

    @field_validator('resume_command')
    @classmethod
    def resume_command_placeholders(cls, v):
        for placeholder in ('{checkpoint_name}', '{container_id}'):
            if placeholder not in v:
                raise ValueError(f'resume_command must contain {placeholder}')
        return v


class ProviderConfig(BaseModel):
    """Hosting provider settings used by the driving loop."""
    type: ProviderType = ProviderType.SIGNAL
    region: Optional[str] = None
    metadata_url: str = "http://169.254.169.254"
    poll_interval: float = Field(default=5.0, gt=0)
    token_ttl: int = Field(default=21600, ge=1, le=21600)
    instances: Dict[str, str] = Field(default_factory=dict)
    lead_time_seconds: float = Field(default=120.0, gt=0)
    signal_name: str = "SIGTERM"
    reachability_port: int = Field(default=22, ge=1, le=65535)
    reachability_timeout: float = Field(default=300.0, gt=0)
    target_instance_id: Optional[str] = None
    destination: Optional[str] = None

    @field_validator('signal_name')
    @classmethod
    def validate_signal_name(cls, v):
        v = v.upper()
        if not v.startswith('SIG'):
            v = f'SIG{v}'
        return v

    @property
    def lead_time(self) -> timedelta:
        return timedelta(seconds=self.lead_time_seconds)


class MigrationConfig(BaseModel):
    """Complete configuration for a migration orchestrator."""
    docker_host: str = Field(..., description="Workload engine endpoint, e.g. unix:///var/run/docker.sock")
    state_dir: str = DEFAULT_STATE_DIR
    work_dir: Optional[str] = None
    chunk_size: int = Field(default=32768, ge=1024)
    leave_running: bool = True
    prune_after_migrate: bool = False
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)

    @field_validator('docker_host')
    @classmethod
    def docker_host_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('docker_host must not be empty')
        return v.strip()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MigrationConfig":
        """
        Build a configuration from environment variables.

        DOCKER_HOST is required. HYDRA_STATE_DIR, HYDRA_WORK_DIR,
        HYDRA_SSH_USER and HYDRA_SSH_KEY are optional overrides.

        Raises:
            ConfigurationError: If DOCKER_HOST is missing or a value is invalid
        """
        env = os.environ if environ is None else environ

        docker_host = env.get('DOCKER_HOST')
        if not docker_host:
            raise ConfigurationError(
                "DOCKER_HOST not found in environment "
                "(typically DOCKER_HOST=unix:///var/run/docker.sock)",
                details={'variable': 'DOCKER_HOST'}
            )

        data: Dict[str, object] = {'docker_host': docker_host}
        if env.get('HYDRA_STATE_DIR'):
            data['state_dir'] = env['HYDRA_STATE_DIR']
        if env.get('HYDRA_WORK_DIR'):
            data['work_dir'] = env['HYDRA_WORK_DIR']

        ssh: Dict[str, object] = {}
        if env.get('HYDRA_SSH_USER'):
            ssh['username'] = env['HYDRA_SSH_USER']
        if env.get('HYDRA_SSH_KEY'):
            ssh['key_filename'] = env['HYDRA_SSH_KEY']
        if ssh:
            data['ssh'] = ssh

        return cls._validated(data)

    @classmethod
    def from_file(
        cls,
        file_path: Union[str, Path],
        environ: Optional[Mapping[str, str]] = None
    ) -> "MigrationConfig":
        """
        Load configuration from a YAML or JSON file.

        docker_host falls back to DOCKER_HOST when the file omits it.
        """
        try:
            data = load_config_file(file_path) or {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load configuration file {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")

        if not data.get('docker_host'):
            env = os.environ if environ is None else environ
            if not env.get('DOCKER_HOST'):
                raise ConfigurationError(
                    f"docker_host missing from {file_path} and DOCKER_HOST not set",
                    details={'variable': 'DOCKER_HOST'}
                )
            data['docker_host'] = env['DOCKER_HOST']

        return cls._validated(data)

    @classmethod
    def _validated(cls, data: Dict[str, object]) -> "MigrationConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e.error_count()} error(s)",
                details={'errors': e.errors(include_url=False)}
            ) from e
