from __future__ import annotations

import logging
import signal
import sys
import threading

from hydro.bootstrap import build_alarm_system

log = logging.getLogger(__name__)


def main() -> None:
    """
    Run the alarm system until interrupted.

    Notes
    -----
    - Loads configuration from `config.yaml` by default.
    - Optional CLI usage:
        python -m hydro.dev.run_alarms --config path/to/config.yaml
    """
    config_path = None
    if "--config" in sys.argv:
        i = sys.argv.index("--config")
        if i + 1 < len(sys.argv):
            config_path = sys.argv[i + 1]

    wiring = build_alarm_system(config_path=config_path)

    logging.basicConfig(level=wiring.config.logging.level, format=wiring.config.logging.format)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    wiring.runtime.start()
    log.info(
        "Alarm system started: %d alarm(s), %d user(s), %d supervised",
        len(wiring.config.alarms),
        len(wiring.config.users),
        len(wiring.service.supervised_ids),
    )

    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        log.info("Stopping alarm system...")
        wiring.runtime.stop()


if __name__ == "__main__":
    main()
