import os
from dataclasses import dataclass, field


def _data_dir() -> str:
    return os.getenv("SCHOOL_DATA_DIR", os.path.join(os.getcwd(), "data"))


def _env(name: str, default: str):
    return field(default_factory=lambda: os.getenv(name, default))


@dataclass(frozen=True)
class Settings:
    database_url: str = field(
        default_factory=lambda: os.getenv(
            "SCHOOL_DATABASE_URL", f"sqlite:///{os.path.join(_data_dir(), 'school_admin.db')}"
        )
    )
    jwt_secret: str = field(
        default_factory=lambda: os.getenv("SCHOOL_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    )
    jwt_algorithm: str = _env("SCHOOL_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = field(default_factory=lambda: int(os.getenv("SCHOOL_JWT_EXP_MINUTES", "60")))
    upload_dir: str = field(default_factory=lambda: os.getenv("SCHOOL_UPLOAD_DIR", os.path.join(_data_dir(), "uploads")))
    export_dir: str = field(default_factory=lambda: os.getenv("SCHOOL_EXPORT_DIR", os.path.join(_data_dir(), "exports")))
    public_base_url: str = _env("SCHOOL_PUBLIC_BASE_URL", "http://localhost:8000")
