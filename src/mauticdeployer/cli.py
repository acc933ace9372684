import logging
import os

import click
from rich.logging import RichHandler

from .constants import (
    DEFAULT_LOG_FILE,
    DEFAULT_MAUTIC_VERSION,
    DEFAULT_PORT,
    DEFAULT_WORKDIR,
    SECRET_FILE_MODE,
)
from .core import MauticDeployer
from .errors import DeploymentError
from .models import DeploymentConfig
from .services.config_loader import ConfigLoader

DEFAULT_CONFIG_FILE = ".mautic-deployer.yml"
DEFAULT_ENV_FILE = "deploy.env"


def _resolve_option(cli_value, sources, key, default=None):
    if cli_value is not None:
        return cli_value
    for source in sources:
        if key in source and source[key] is not None:
            return source[key]
    return default


def _split_sources(value):
    if not value:
        return ()
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = str(value).split(",")
    return tuple(item.strip() for item in items if item and str(item).strip())


def _default_path(explicit, file_name):
    if explicit is not None:
        return explicit
    candidate = os.path.join(os.getcwd(), file_name)
    return candidate if os.path.exists(candidate) else None


def _configure_file_logging(logger, log_file, verbose):
    try:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        os.chmod(log_file, SECRET_FILE_MODE)
    except OSError as exc:
        logger.warning("Could not open log file %s: %s", log_file, exc)
        return None
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    logger.addHandler(file_handler)
    return file_handler


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--email-address", envvar="EMAIL_ADDRESS", help="Administrator e-mail address.")
@click.option("--mautic-password", envvar="MAUTIC_PASSWORD", help="Administrator password.")
@click.option("--ip-address", envvar="IP_ADDRESS", help="Public IP address of the host.")
@click.option("--port", envvar="PORT", help=f"Host port for the web container (default: {DEFAULT_PORT}).")
@click.option(
    "--mautic-version",
    envvar="MAUTIC_VERSION",
    help=f"Mautic release to deploy (default: {DEFAULT_MAUTIC_VERSION}).",
)
@click.option("--themes", envvar="MAUTIC_THEMES", help="Comma-separated theme archive URLs.")
@click.option("--plugins", envvar="MAUTIC_PLUGINS", help="Comma-separated plugin archive URLs.")
@click.option("--mysql-database", envvar="MYSQL_DATABASE", help="MySQL database name.")
@click.option("--mysql-user", envvar="MYSQL_USER", help="MySQL application user.")
@click.option("--mysql-password", envvar="MYSQL_PASSWORD", help="MySQL application password.")
@click.option("--mysql-root-password", envvar="MYSQL_ROOT_PASSWORD", help="MySQL root password.")
@click.option("--domain-name", envvar="DOMAIN_NAME", help="Domain served over HTTPS through nginx.")
@click.option("--github-token", envvar="GITHUB_TOKEN", help="Token for private GitHub extension archives.")
@click.option(
    "--workdir",
    type=click.Path(),
    help=f"Deployment directory on the host (default: {DEFAULT_WORKDIR}).",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--env-file",
    required=False,
    type=click.Path(),
    help=f"Path to a KEY=value file. Defaults to {DEFAULT_ENV_FILE} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help=f"Path to log file (default: {DEFAULT_LOG_FILE})")
@click.option(
    "--allow-insecure-http",
    is_flag=True,
    default=None,
    help="Allow HTTP extension URLs (insecure). By default only HTTPS URLs are accepted.",
)
@click.option(
    "--skip-packages",
    is_flag=True,
    default=None,
    help="Do not install host packages through apt.",
)
def main(
    email_address,
    mautic_password,
    ip_address,
    port,
    mautic_version,
    themes,
    plugins,
    mysql_database,
    mysql_user,
    mysql_password,
    mysql_root_password,
    domain_name,
    github_token,
    workdir,
    config,
    env_file,
    verbose,
    log_file,
    allow_insecure_http,
    skip_packages,
):
    """Install or upgrade Mautic on this host with Docker Compose."""
    logger = logging.getLogger("mauticdeployer")

    try:
        config_loader = ConfigLoader()
        env_values = config_loader.load_env_file(_default_path(env_file, DEFAULT_ENV_FILE))
        config_values = config_loader.load(_default_path(config, DEFAULT_CONFIG_FILE))
    except DeploymentError as exc:
        raise click.ClickException(str(exc)) from exc

    sources = (env_values, config_values)
    verbose = bool(_resolve_option(verbose, sources, "verbose", default=False))
    log_file = _resolve_option(log_file, sources, "log_file", default=DEFAULT_LOG_FILE)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        _configure_file_logging(logger, log_file, verbose)

    deployment_config = DeploymentConfig(
        email_address=str(_resolve_option(email_address, sources, "email_address", default="")),
        mautic_password=str(_resolve_option(mautic_password, sources, "mautic_password", default="")),
        ip_address=str(_resolve_option(ip_address, sources, "ip_address", default="")),
        port=str(_resolve_option(port, sources, "port", default=DEFAULT_PORT)),
        mautic_version=str(
            _resolve_option(mautic_version, sources, "mautic_version", default=DEFAULT_MAUTIC_VERSION)
        ),
        mysql_database=str(_resolve_option(mysql_database, sources, "mysql_database", default="")),
        mysql_user=str(_resolve_option(mysql_user, sources, "mysql_user", default="")),
        mysql_password=str(_resolve_option(mysql_password, sources, "mysql_password", default="")),
        mysql_root_password=str(
            _resolve_option(mysql_root_password, sources, "mysql_root_password", default="")
        ),
        themes=_split_sources(_resolve_option(themes, sources, "themes")),
        plugins=_split_sources(_resolve_option(plugins, sources, "plugins")),
        domain_name=_resolve_option(domain_name, sources, "domain_name") or None,
        github_token=_resolve_option(github_token, sources, "github_token") or None,
        workdir=str(_resolve_option(workdir, sources, "workdir", default=DEFAULT_WORKDIR)),
        allow_insecure_http=bool(
            _resolve_option(allow_insecure_http, sources, "allow_insecure_http", default=False)
        ),
        skip_packages=bool(_resolve_option(skip_packages, sources, "skip_packages", default=False)),
    )

    deployer = MauticDeployer(config=deployment_config)
    raise SystemExit(deployer.run())


if __name__ == "__main__":
    main()
