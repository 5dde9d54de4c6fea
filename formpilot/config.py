"""
Configuration module for loading engine settings and the applicant profile.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional

import yaml

CONFIG_DIR = Path(__file__).parent.parent / "config"


@dataclass
class Settings:
    """Engine settings. Times are in milliseconds unless named otherwise."""
    headless: bool = False
    slow_mo: int = 80
    cdp_url: str = ""
    storage_state_path: str = "data/storage_state.json"
    query_timeout_ms: int = 5000
    navigation_timeout_ms: int = 30000
    max_steps: int = 8
    random_delay_min_ms: int = 600
    random_delay_max_ms: int = 1200
    step_delay_min_ms: int = 300
    step_delay_max_ms: int = 800
    enable_tracing: bool = True
    artifacts_dir: str = "artifacts"
    database_path: str = "data/formpilot.db"
    classifier_timeout_s: float = 30.0
    classifier_max_retries: int = 2
    llm_model: str = "claude-sonnet-4-20250514"


# env var -> (settings attribute, parser)
_ENV_OVERRIDES = {
    "HEADLESS": ("headless", lambda v: v.lower() in ("1", "true", "yes")),
    "SLOW_MO": ("slow_mo", int),
    "MAX_STEPS": ("max_steps", int),
    "RANDOM_DELAY_MIN": ("random_delay_min_ms", int),
    "RANDOM_DELAY_MAX": ("random_delay_max_ms", int),
    "ENABLE_TRACING": ("enable_tracing", lambda v: v.lower() not in ("0", "false", "no")),
    "FORMPILOT_DB": ("database_path", str),
    "LLM_MODEL": ("llm_model", str),
}


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides.

    Args:
        config_path: Path to a settings YAML. Defaults to config/settings.yaml;
                     a missing default file just means built-in defaults.
    """
    path = Path(config_path) if config_path else CONFIG_DIR / "settings.yaml"
    data = {}
    if path.exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    elif config_path:
        raise FileNotFoundError(f"Settings file not found: {path}")

    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
    settings = Settings(**data)

    for env_name, (attr, parse) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw:
            setattr(settings, attr, parse(raw))

    if settings.random_delay_min_ms > settings.random_delay_max_ms:
        raise ValueError("random_delay_min_ms must not exceed random_delay_max_ms")
    if settings.step_delay_min_ms > settings.step_delay_max_ms:
        raise ValueError("step_delay_min_ms must not exceed step_delay_max_ms")
    if settings.max_steps < 1:
        raise ValueError("max_steps must be at least 1")
    return settings


@dataclass
class Personal:
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    email: str = ""
    phone: str = ""
    linkedin: str = ""
    github: str = ""
    portfolio: str = ""


@dataclass
class Location:
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


@dataclass
class WorkAuthorization:
    authorized_to_work: bool = True
    require_sponsorship: bool = False


@dataclass
class Experience:
    years_of_experience: int = 0
    current_company: str = ""
    current_title: str = ""


@dataclass
class Resume:
    path: str = ""
    # Named alternatives, e.g. {"backend": "resume-backend.pdf"}
    variants: Dict[str, str] = field(default_factory=dict)
    _profile_dir: Optional[Path] = field(default=None, repr=False)

    def _resolve(self, raw: str) -> Optional[Path]:
        path = Path(os.path.expanduser(raw))
        if not path.is_absolute() and self._profile_dir:
            path = self._profile_dir / path
        return path.absolute() if path.exists() else None

    def get_absolute_path(self, variant: str = "") -> Optional[Path]:
        """Return absolute path to a resume file.

        Resolution order:
        1. The named variant, if given and present
        2. The explicit path (relative paths resolve against the profile directory)
        3. resume.pdf in the profile directory
        """
        if variant and variant in self.variants:
            found = self._resolve(self.variants[variant])
            if found:
                return found

        if self.path:
            found = self._resolve(self.path)
            if found:
                return found

        if self._profile_dir:
            for filename in ["resume.pdf", "Resume.pdf", "resume.PDF"]:
                auto_path = self._profile_dir / filename
                if auto_path.exists():
                    return auto_path.absolute()

        return None


@dataclass
class Profile:
    """Applicant profile the default answer synthesizer reads from."""
    personal: Personal = field(default_factory=Personal)
    location: Location = field(default_factory=Location)
    work_authorization: WorkAuthorization = field(default_factory=WorkAuthorization)
    experience: Experience = field(default_factory=Experience)
    resume: Resume = field(default_factory=Resume)
    salary_expectation: str = ""
    start_date: str = ""
    # Canonical key -> answer, for free-text questions
    default_answers: Dict[str, str] = field(default_factory=dict)

    def get_field_value(self, key: str) -> Optional[str]:
        """Get value for a canonical field key."""
        field_map = {
            "first_name": self.personal.first_name,
            "last_name": self.personal.last_name,
            "full_name": self.personal.full_name
            or f"{self.personal.first_name} {self.personal.last_name}".strip(),
            "email": self.personal.email,
            "phone": self.personal.phone,
            "linkedin_url": self.personal.linkedin,
            "github_url": self.personal.github,
            "portfolio_url": self.personal.portfolio,
            "address": self.location.address,
            "city": self.location.city,
            "zip_code": self.location.zip_code,
            "country": self.location.country,
            "work_authorization": "Yes" if self.work_authorization.authorized_to_work else "No",
            "requires_sponsorship": "Yes" if self.work_authorization.require_sponsorship else "No",
            "years_experience": str(self.experience.years_of_experience),
            "current_company": self.experience.current_company,
            "current_title": self.experience.current_title,
            "salary_expectation": self.salary_expectation,
            "start_date": self.start_date,
        }
        value = field_map.get(key)
        if not value:
            value = self.default_answers.get(key)
        return value or None

    def summary(self) -> str:
        """Short plain-text profile used as context for answer synthesis."""
        p = self
        return (
            f"Name: {p.personal.full_name or p.personal.first_name + ' ' + p.personal.last_name}\n"
            f"Current Role: {p.experience.current_title} at {p.experience.current_company}\n"
            f"Years of Experience: {p.experience.years_of_experience}\n"
            f"Location: {p.location.city}, {p.location.state}\n"
            f"Sponsorship Required: {'Yes' if p.work_authorization.require_sponsorship else 'No'}"
        )


def get_available_profiles() -> List[str]:
    """Names of profile directories that contain a profile.yaml."""
    profiles_dir = CONFIG_DIR / "profiles"
    if not profiles_dir.exists():
        return []
    return [p.name for p in profiles_dir.iterdir() if p.is_dir() and (p / "profile.yaml").exists()]


def load_profile(profile_name: Optional[str] = None, config_path: Optional[str] = None) -> Profile:
    """Load applicant profile from YAML file.

    Args:
        profile_name: Name of the profile directory under config/profiles/.
        config_path: Direct path to a profile YAML file. Overrides profile_name.

    Returns:
        Loaded Profile object.
    """
    profiles_dir = CONFIG_DIR / "profiles"

    if config_path is not None:
        path = Path(config_path)
    else:
        path = profiles_dir / (profile_name or "default") / "profile.yaml"

    if not path.exists():
        available = get_available_profiles()
        if available:
            raise FileNotFoundError(
                f"Profile config not found: {path}\n"
                f"Available profiles: {', '.join(available)}"
            )
        raise FileNotFoundError(f"Profile config not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    resume = Resume(**data.get("resume", {}))
    resume._profile_dir = path.parent

    profile = Profile(
        personal=Personal(**data.get("personal", {})),
        location=Location(**data.get("location", {})),
        work_authorization=WorkAuthorization(**data.get("work_authorization", {})),
        experience=Experience(**data.get("experience", {})),
        resume=resume,
        salary_expectation=str(data.get("salary_expectation", "")),
        start_date=str(data.get("start_date", "")),
        default_answers={str(k): str(v) for k, v in (data.get("default_answers") or {}).items()},
    )

    # Environment wins over the YAML file
    if os.getenv("FORMPILOT_EMAIL"):
        profile.personal.email = os.getenv("FORMPILOT_EMAIL")
    if os.getenv("FORMPILOT_PHONE"):
        profile.personal.phone = os.getenv("FORMPILOT_PHONE")

    return profile
