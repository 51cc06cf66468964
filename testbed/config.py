"""Testbed configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Testbed settings loaded from environment variables."""

    # Convergence attempts per node (terraform) / extra deploy calls (swarm)
    attempts: int = 5
    recreate: bool = False

    # Reachability wait
    ssh_attempts: int = 40
    ssh_retry_interval: float = 15.0  # seconds
    ssh_connect_timeout: float = 10.0

    # Stack polling
    task_wait_attempts: int = 100
    app_wait_attempts: int = 100
    poll_interval: float = 1.0
    deploy_retry_interval: float = 1.0

    # Docker settings
    docker_socket: str = "unix:///var/run/docker.sock"

    # Credentials used by the database health probe (empty: no password)
    mariadb_root_password: str = ""

    # Remote directory chef-solo runs from (relative to the login home)
    chef_dir: str = "chef-solo"

    # Local directory with cookbooks uploaded to every node
    cookbooks_path: str = ""

    log_level: str = "INFO"

    class Config:
        env_prefix = "TESTBED_"


settings = Settings()
