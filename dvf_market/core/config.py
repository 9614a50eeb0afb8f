import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")

    # Transaction source (DVF extracts, one per vintage)
    DVF_PROVIDER: str = os.getenv("DVF_PROVIDER", "file")                 # file | http | mock
    DVF_BASE_URL: str | None = os.getenv("DVF_BASE_URL")
    DVF_PRIMARY_VINTAGE: str = os.getenv("DVF_PRIMARY_VINTAGE", "2025")
    DVF_PRIMARY_PATH: str = os.getenv("DVF_PRIMARY_PATH", "./data/mutations_d93_2025.csv")
    DVF_FALLBACK_VINTAGE: str = os.getenv("DVF_FALLBACK_VINTAGE", "2024")
    DVF_FALLBACK_PATH: str = os.getenv("DVF_FALLBACK_PATH", "./data/mutations_d93_2024.csv")
    DVF_DELIMITER: str = os.getenv("DVF_DELIMITER", ";")
    DVF_ROW_LIMIT: int = int(os.getenv("DVF_ROW_LIMIT", "1000"))
    DVF_CHUNK_SIZE: int = int(os.getenv("DVF_CHUNK_SIZE", "500"))
    DVF_MIN_TRANSACTIONS: int = int(os.getenv("DVF_MIN_TRANSACTIONS", "10"))
    DVF_CACHE_TTL_SECONDS: int = int(os.getenv("DVF_CACHE_TTL_SECONDS", "1800"))
    DVF_TIMEOUT_SECONDS: float = float(os.getenv("DVF_TIMEOUT_SECONDS", "30"))

    # Geocoding
    GEO_PROVIDER: str = os.getenv("GEO_PROVIDER", "mock")                 # mock | http
    GEO_BASE_URL: str = os.getenv("GEO_BASE_URL", "https://api-adresse.data.gouv.fr")
    GEO_TIMEOUT_SECONDS: float = float(os.getenv("GEO_TIMEOUT_SECONDS", "10"))
    GEO_CACHE_TTL_SECONDS: int = int(os.getenv("GEO_CACHE_TTL_SECONDS", "604800"))  # 7 days
    GEO_CACHE_MAXSIZE: int = int(os.getenv("GEO_CACHE_MAXSIZE", "20000"))
    GEO_MAX_CONCURRENCY: int = int(os.getenv("GEO_MAX_CONCURRENCY", "10"))

    # Candidate selection (m²)
    TOLERANCE_WITH_ADDRESS_M2: float = float(os.getenv("TOLERANCE_WITH_ADDRESS_M2", "40"))
    TOLERANCE_WITHOUT_ADDRESS_M2: float = float(os.getenv("TOLERANCE_WITHOUT_ADDRESS_M2", "20"))
    TOLERANCE_DEPARTMENT_M2: float = float(os.getenv("TOLERANCE_DEPARTMENT_M2", "30"))
    CANDIDATE_CAP: int = int(os.getenv("CANDIDATE_CAP", "1000"))

    # Aggregation
    TOP_SCORED: int = int(os.getenv("TOP_SCORED", "50"))
    TOP_MEDIAN: int = int(os.getenv("TOP_MEDIAN", "30"))
    DIVERGENCE_THRESHOLD: float = float(os.getenv("DIVERGENCE_THRESHOLD", "0.15"))
    STRONG_EXACT_MATCHES: int = int(os.getenv("STRONG_EXACT_MATCHES", "10"))
    DISPLAY_LIMIT: int = int(os.getenv("DISPLAY_LIMIT", "20"))
    REQUIRE_EXACT_POSTAL_CODE: bool = os.getenv("REQUIRE_EXACT_POSTAL_CODE", "true").lower() == "true"

    # Security
    API_KEY: str | None = os.getenv("API_KEY")
    RATE_LIMIT_RPM: int = int(os.getenv("RATE_LIMIT_RPM", "60"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
