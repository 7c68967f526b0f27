import time
import traceback
from pathlib import Path
from typing import Optional


class GatewayLog:
    """
    Console + optional file log. Every line is stamped:
      [2024-05-03 22:47:10] Click button: [OK]
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        verbose: bool = False,
        echo: bool = True,
    ) -> None:
        self.log_path = log_path
        self.verbose = verbose
        self.echo = echo
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_message(self, text: str) -> None:
        stamp = time.strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] {text}"
        if self.echo:
            try:
                print(line, flush=True)
            except UnicodeEncodeError:
                print(line.encode("ascii", "replace").decode("ascii"), flush=True)
        if self.log_path is None:
            return
        try:
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:
            pass

    def log_error(self, exc: BaseException) -> None:
        self.log_message(f"ERROR: {exc!r}")
        details = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        ).rstrip()
        for line in details.splitlines():
            self.log_message(f"ERROR: {line}")

    def debug(self, text: str) -> None:
        if self.verbose:
            self.log_message(f"[DEBUG] {text}")
