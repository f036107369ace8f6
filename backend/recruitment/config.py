from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / "RecruitmentData"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    scheduled_publisher_enabled: bool = True
    scheduled_publish_interval_seconds: float = 60.0
    # Actor recorded on automatic publishes; falls back to the job's creator.
    scheduled_publish_actor_id: int | None = None

    # Attempts at writing the transition record once the status patch committed.
    audit_write_attempts: int = 2
    bulk_max_jobs: int = 100

    @property
    def db_path(self) -> Path:
        return self.data_dir / "recruitment.sqlite"

    model_config = {"env_prefix": "RECRUITMENT_"}


settings = Settings()
