from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "examdesk"
    environment: str = "local"
    debug: bool = True
    log_level: str = "INFO"

    mongo_scheme: str = "mongodb+srv"
    mongo_tls: bool = True
    mongo_host: str = "localhost"
    mongo_db: str = "examdesk"
    mongo_password: str | None = None
    mongo_user: str | None = None

    jwt_algorithm: str = "HS256"
    jwt_secret_key: str = "very-secret-key"
    access_token_expires_minutes: int = 60

    redis_db: int = 0
    redis_port: int = 6379
    redis_host: str = "localhost"
    redis_password: str | None = None

    super_admin_email: str = "superadmin@example.com"

    # None means the server's local civil time
    exam_timezone: str | None = None
    exam_window_start_hour: int = 9
    exam_window_end_hour: int = 18
    cascade_course_delete_to_exams: bool = False
    transition_rate_limit_seconds: int = 2

    model_config = SettingsConfigDict(env_file=(".env",), case_sensitive=True)

    @property
    def mongo_uri(self) -> str:
        auth = ""
        if self.mongo_user and self.mongo_password:
            auth = f"{self.mongo_user}:{self.mongo_password}@"
        params = f"?retryWrites=true&w=majority"
        return f"{self.mongo_scheme}://{auth}{self.mongo_host}/{self.mongo_db}{params}"


settings = Settings()
