"""Application factory wiring Flask extensions, the API and the CLI."""

from __future__ import annotations

from flask import Flask

from authcore.core.config import CONFIG_MAP, BaseConfig, get_config
from authcore.core.logger import configure_logging, init_app as init_logging


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config class/object, an environment name from
        :data:`~authcore.core.config.CONFIG_MAP`, or ``None`` to use ``APP_ENV``.
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    if config is None:
        config = get_config()
    elif isinstance(config, str):
        config = CONFIG_MAP.get(config.strip().lower(), config)
    app.config.from_object(config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Proxy headers so remote_addr reflects the real client
    from authcore.core import proxy

    proxy.init_app(app)

    from authcore.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from authcore.core import cors

    cors.init_app(app)

    from authcore.api import init_app as init_api

    init_api(app)

    from authcore.core import errors

    errors.init_app(app)
    errors.register_jwt_handlers(extensions.jwt)

    from authcore import cli as app_cli

    app_cli.init_app(app)

    return app
