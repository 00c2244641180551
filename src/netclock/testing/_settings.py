"""Test factory for Settings.

Provides :func:`make_settings` — a convenience factory that creates
:class:`~netclock._settings.Settings` instances without depending on
``.env`` files or real environment variables.
"""

from __future__ import annotations

from typing import Any

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from netclock._settings import Settings


class _IsolatedSettings(Settings):
    """Settings subclass that ignores all ambient configuration sources.

    Overrides :meth:`settings_customise_sources` to return only
    ``init_settings``, so tests are deterministic regardless of the
    host environment.
    """

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],  # noqa: ARG003
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings,)


def make_settings(**overrides: Any) -> Settings:
    """Create a ``Settings`` instance with model defaults plus *overrides*.

    Ignores ``os.environ``, ``.env`` files, and secret directories.

    Example::

        from netclock._settings import SyncSettings

        settings = make_settings(sync=SyncSettings(hosts=["a.example"]))
        assert settings.sync.hosts == ["a.example"]
    """
    # _env_file disables dotenv loading but is not part of the generated
    # __init__ signature.
    return _IsolatedSettings(_env_file=None, **overrides)  # type: ignore[call-arg]
