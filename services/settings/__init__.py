from .store import SettingsNotifier, SettingsStore

__all__ = ['SettingsStore', 'SettingsNotifier']
