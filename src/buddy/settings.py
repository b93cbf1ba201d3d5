import json
import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from buddy.files import atomic_write_text
from buddy.models import InteractionMode

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """User preferences kept between runs."""

    mode: InteractionMode = InteractionMode.ASK
    sandbox_root: str | None = None
    server_url: str | None = None
    model_id: str | None = None


class SettingsStore:
    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def load(self) -> Settings:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Settings()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return Settings()
        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid settings in {self.path}: {e}")
            return Settings()

    def save(self, settings: Settings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(self.path, settings.model_dump_json(indent=2))

    def update(self, **changes) -> Settings:
        settings = self.load().model_copy(update=changes)
        self.save(settings)
        return settings
