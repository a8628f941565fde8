# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import logging
import os
import socket
import traceback
import urllib.request

from wordbatch.logconf import configure_logging, resolve_log_path
from wordbatch.workspace import Workspace


def _health_ok(host: str, port: int) -> bool:
    """True only when a WordBatch API (not some other service) answers on host:port."""
    try:
        with urllib.request.urlopen(f"http://{host}:{port}/api/health", timeout=0.4) as resp:
            if getattr(resp, "status", 200) != 200:
                return False
            data = json.loads(resp.read().decode("utf-8", errors="replace"))
    except (OSError, ValueError):
        return False
    return isinstance(data, dict) and bool(data.get("ok")) and "version" in data


def _port_available(host: str, port: int) -> bool:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, port))
        return True
    except OSError:
        return False


def main() -> None:
    host = os.environ.get("WORDBATCH_HOST", "127.0.0.1")
    preferred_port = int(os.environ.get("WORDBATCH_PORT", "7870"))
    max_tries = int(os.environ.get("WORDBATCH_PORT_MAX_TRIES", "20"))

    ws = Workspace.from_env()
    ws.ensure_dirs()
    log_path = resolve_log_path(ws.data_dir, "launch.log")
    log_config = configure_logging(log_path, level=os.environ.get("WORDBATCH_LOG_LEVEL", "INFO"))
    log = logging.getLogger("wordbatch.launch")
    log.info("Launching WordBatch API")
    log.info("data_dir=%s", str(ws.data_dir))
    log.info("preferred_port=%s max_tries=%s", preferred_port, max_tries)
    log.info("log_path=%s", str(log_path))

    for candidate in range(preferred_port, preferred_port + max_tries):
        if _health_ok(host, candidate):
            log.info("Already running: http://%s:%s/", host, candidate)
            return

    port = None
    for candidate in range(preferred_port, preferred_port + max_tries):
        if _port_available(host, candidate):
            port = candidate
            break
    if port is None:
        port = preferred_port
    log.info("Selected URL: http://%s:%s/", host, port)

    try:
        import uvicorn  # lazy import

        from webapp import app as app_module

        config = uvicorn.Config(
            app_module.app,
            host=host,
            port=port,
            log_level=os.environ.get("WORDBATCH_LOG_LEVEL", "info").lower(),
            log_config=log_config,
        )
        uvicorn.Server(config).run()
    except Exception:
        log.error("Failed to start server:\n%s", traceback.format_exc())
        raise


if __name__ == "__main__":
    main()
