# =========================================
# 📄 File: config/config_loader.py
# Purpose: Load YAML config (dev/prod), substitute ${ENV_VARS}, validate, and expose helpers
# =========================================

import os                      # Used to read ENV to pick dev/prod and to resolve ${VAR} placeholders
import re                      # Used to find and replace ${VAR} patterns inside YAML text
import sys                     # Used to exit early with a clear error message on invalid config
from typing import Dict, Any   # Type hints for better readability and tooling
import yaml                    # Safe YAML parsing (install: PyYAML)

CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))  # YAML files live next to this module

SUPPORTED_DRIVERS = {
    "sqlite": None,                             # file-backed, no server (dev/tests)
    "mysql": "mysql+pymysql",                   # the engine the analysis was written for
    "postgresql": "postgresql+psycopg2",
}


def _substitute_env_placeholders(yaml_text: str) -> str:
    """
    Replace ${VAR} placeholders in YAML text with their environment variable values.
    If an env var is missing, mark it as <MISSING:VAR> to fail validation cleanly.
    """
    pattern = re.compile(r"\$\{([^}^{]+)\}")
    def repl(match):
        var_name = match.group(1)                              # Extract VAR name from ${VAR}
        return os.getenv(var_name, f"<MISSING:{var_name}>")    # Return env value or a sentinel
    return pattern.sub(repl, yaml_text)


def _load_yaml_file(path: str) -> Dict[str, Any]:
    """
    Read a YAML file from disk, perform ${VAR} substitution, and parse it to a dict.
    """
    if not os.path.exists(path):
        print(f"❌ Configuration file not found: {path}")
        sys.exit(1)

    with open(path, "r", encoding="utf-8") as f:
        raw = f.read()

    substituted = _substitute_env_placeholders(raw)

    try:
        cfg = yaml.safe_load(substituted)
    except yaml.YAMLError as e:
        print(f"❌ YAML parsing error in {path}: {e}")
        sys.exit(1)

    if not isinstance(cfg, dict):                              # Empty file or a bare scalar
        print(f"❌ Configuration file {path} must contain a mapping")
        sys.exit(1)

    return cfg


def _validate_config(cfg: Dict[str, Any]) -> None:
    """
    Validate presence of required keys and ensure no <MISSING:...> placeholders remain.
    """
    required_top = ["environment", "log_level", "database", "tables", "output_dir"]
    missing_top = [k for k in required_top if k not in cfg or cfg[k] in (None, "")]
    if missing_top:
        print(f"❌ Missing top-level config keys: {', '.join(missing_top)}")
        sys.exit(1)

    db = cfg.get("database") or {}
    driver = str(db.get("driver", "")).lower()
    if driver not in SUPPORTED_DRIVERS:
        print(f"❌ Unsupported database.driver '{driver}' (expected one of: {', '.join(SUPPORTED_DRIVERS)})")
        sys.exit(1)

    # sqlite only needs a file name; server databases need the full set of credentials
    required_db = ["name"] if driver == "sqlite" else ["host", "port", "name", "user", "password"]
    missing_db = [f"database.{k}" for k in required_db
                  if k not in db or db[k] in (None, "") or "MISSING:" in str(db[k])]
    if missing_db:
        print(f"❌ Missing/invalid DB config keys: {', '.join(missing_db)}")
        sys.exit(1)

    tables = cfg.get("tables") or {}
    missing_tables = [f"tables.{k}" for k in ("source", "working") if not tables.get(k)]
    if missing_tables:
        print(f"❌ Missing table names: {', '.join(missing_tables)}")
        sys.exit(1)
    if tables["source"] == tables["working"]:
        print("❌ tables.working must differ from tables.source (the source is never modified).")
        sys.exit(1)

    # S3 is optional; if a bucket is configured it must be fully resolved
    if "MISSING:" in str(cfg.get("s3_bucket", "")):
        print("❌ S3 bucket placeholder unresolved.")
        sys.exit(1)


def _apply_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Fill optional keys so callers can index them directly."""
    cfg.setdefault("debug", False)
    cfg.setdefault("source_csv", "data/raw/healthcare_dataset.csv")
    cfg.setdefault("index_key_length", 255)
    cfg.setdefault("s3_bucket", None)
    cfg.setdefault("aws_region", None)
    quality = cfg.get("quality") or {}
    quality.setdefault("report_path", os.path.join("logs", "quality_report.md"))
    quality.setdefault("fail_on_missing", False)
    cfg["quality"] = quality
    return cfg


def get_config(env: str | None = None) -> Dict[str, Any]:
    """
    Public API: pick env from ENV (default 'dev'), load YAML, validate, return dict.
    """
    env = (env or os.getenv("ENV", "dev")).lower()
    path = os.path.join(CONFIG_DIR, f"{env}.yaml")             # e.g. config/dev.yaml
    cfg = _load_yaml_file(path)
    _validate_config(cfg)
    return _apply_defaults(cfg)


def build_db_url(cfg: Dict[str, Any]) -> str:
    """
    Helper to build a SQLAlchemy URL string from cfg dict (sqlite, mysql or postgresql).
    """
    db = cfg["database"]
    driver = str(db["driver"]).lower()
    if driver == "sqlite":
        return f"sqlite:///{db['name']}"                       # Relative path -> file under cwd
    user = db["user"]
    pwd = db["password"]
    host = db["host"]
    port = db["port"]
    name = db["name"]
    url = f"{SUPPORTED_DRIVERS[driver]}://{user}:{pwd}@{host}:{port}/{name}"
    if driver == "mysql":
        url += "?charset=utf8mb4"
    return url


def mask_db_url(cfg: Dict[str, Any]) -> str:
    """Connection URL with the password replaced, safe for logs."""
    url = build_db_url(cfg)
    pwd = str(cfg["database"].get("password") or "")
    return url.replace(f":{pwd}@", ":***@") if pwd else url
