"""Step outputs for CI runners."""

import os
from typing import Dict, Optional

GITHUB_OUTPUT_ENV = "GITHUB_OUTPUT"


class OutputWriter:
    """Publishes ``name=value`` outputs to ``$GITHUB_OUTPUT`` or the console."""

    def __init__(self, logger, console, environ: Optional[Dict[str, str]] = None):
        self.logger = logger
        self.console = console
        self.environ = os.environ if environ is None else environ

    @property
    def output_file(self) -> Optional[str]:
        return self.environ.get(GITHUB_OUTPUT_ENV) or None

    def write(self, outputs: Dict[str, str]):
        lines = [f"{name}={self._single_line(value)}" for name, value in outputs.items()]
        if self.output_file:
            try:
                with open(self.output_file, "a", encoding="utf-8") as file_obj:
                    file_obj.write("\n".join(lines) + "\n")
                self.logger.debug("Wrote %s output(s) to %s", len(lines), self.output_file)
                return
            except OSError as exc:
                self.logger.warning("Could not write outputs to %s: %s", self.output_file, exc)

        for line in lines:
            self.console.print(line, markup=False, highlight=False)

    @staticmethod
    def _single_line(value) -> str:
        return str(value if value is not None else "").replace("\r", " ").replace("\n", " ")
