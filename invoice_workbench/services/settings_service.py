"""Application settings persistence."""

from dataclasses import replace
from typing import Optional

from ..models.settings import AppSettings
from ..storage.key_value_store import KeyValueStore, SETTINGS_KEY, get_store
from ..utils.logger import get_invoice_logger


class SettingsService:
    """Load and save the stored AppSettings object."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or get_store()
        self.logger = get_invoice_logger()

    def load_settings(self) -> AppSettings:
        """Stored settings, or the configured defaults when missing or unreadable."""
        data = self.store.get(SETTINGS_KEY)
        if data is None:
            return AppSettings.defaults()

        try:
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            return AppSettings.from_dict(data)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Error loading settings: {str(e)}")
            return AppSettings.defaults()

    def save_settings(self, settings: AppSettings) -> AppSettings:
        self.store.set(SETTINGS_KEY, settings.to_dict())
        self.logger.info("Settings saved")
        return settings

    def update_settings(self, **changes) -> AppSettings:
        return self.save_settings(replace(self.load_settings(), **changes))
