"""Actionable error catalog for mautic-deployer."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "missing_config": {
        "what": "Required configuration is missing: {fields}.",
        "next": "Set the values in deploy.env, the YAML config, the environment, or as CLI options.",
    },
    "invalid_extension_source": {
        "what": "Invalid theme/plugin source: {source}",
        "next": "Use an HTTPS URL pointing to a `.zip` archive.",
    },
    "insecure_http": {
        "what": "{label} uses insecure HTTP.",
        "next": "Switch to HTTPS or use `--allow-insecure-http` only for trusted endpoints.",
    },
    "containers_failed": {
        "what": "Failed to {action} the Mautic containers.",
        "next": "Inspect `docker compose logs` in the deployment directory and retry.",
    },
    "health_timeout": {
        "what": "{containers} did not become healthy in time.",
        "next": "Check `docker ps` and `docker logs <container>` on the host, then retry.",
    },
    "image_pull_failed": {
        "what": "Could not pull image {image}.",
        "next": "Check that the Mautic version exists on Docker Hub and that the host has network access.",
    },
    "installer_failed": {
        "what": "The Mautic installer exited with an error.",
        "next": "Review the installer output above and the logs in the `logs` directory.",
    },
    "tls_failed": {
        "what": "Could not obtain a TLS certificate for {domain}.",
        "next": "Verify that the DNS A record points to this host and that port 80 is reachable.",
    },
    "tls_vhost_missing": {
        "what": "Could not obtain a TLS certificate for {domain}; the nginx virtual host {vhost} was not found.",
        "next": "Upload nginx-virtual-host-{domain} to the deployment directory and rerun.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
