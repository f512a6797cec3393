# utils.py
import re
import sys
from datetime import datetime
from colorama import init, Fore

from . import directories

init(autoreset=True)  # Initialize colorama for colored output

ANSI_ESCAPE = re.compile(r'\x1B[@-_][0-?]*[ -/]*[@-~]')
TIMESTAMP_PREFIX = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\]")

class Logger:
    """Tee stdout/stderr to the terminal and a log file (ANSI codes stripped in the file)."""

    def __init__(self, logfile_path=None):
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.logfile_path = logfile_path or directories.LOGS_DIR / f"analysis_{timestamp}.log"
        directories.ensure_dir(self.logfile_path.parent)
        self.terminal = sys.__stdout__
        self.logfile = open(self.logfile_path, "a")

        sys.stdout = self
        sys.stderr = self

    def write(self, message):
        if message.strip():  # Only timestamp non-empty lines
            if not TIMESTAMP_PREFIX.match(message):
                message = f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] {message}"

        self.terminal.write(message)
        self.logfile.write(ANSI_ESCAPE.sub('', message))  # Remove ANSI codes for log file

    def flush(self):
        # Needed for Python's `print()` buffering behavior
        self.terminal.flush()
        self.logfile.flush()

    def close(self):
        self.logfile.close()
        sys.stdout = self.terminal
        sys.stderr = self.terminal

def color_text(text: str, r: int, g: int, b: int) -> str:
    """Return a string wrapped in 24-bit RGB ANSI escape codes."""
    return f"\033[38;2;{r};{g};{b}m{text}\033[0m"

def _log(level, color_code, msg):
    prefix = f"{color_code}[{level}]{Fore.RESET} "
    print(prefix + msg)

def process_step(msg): _log("PROCESS", color_text("", 209, 255, 246), msg)
def info(msg): _log("INFO", Fore.CYAN, msg)
def warn(msg): _log("WARNING", Fore.YELLOW, msg)
def error(msg): _log("ERROR", Fore.RED, msg)
def success(msg): _log("SUCCESS", Fore.GREEN, msg)

def timestamped_name(prefix: str, suffix: str, fmt: str = "%Y%m%d_%H%M") -> str:
    """
    <prefix>_<YYYYMMDD_HHMM><suffix>, e.g. global_stats_PCT_UNEMPLOYED_20250809_1543.csv
    """
    return f"{prefix}_{datetime.now().strftime(fmt)}{suffix}"

if __name__ == "__main__":
    log_path = directories.LOGS_DIR / timestamped_name("example", ".log")
    # Activate logging
    logger = Logger(log_path)

    # Example prints (go to both console and log file)
    print("This goes to both console and the log file.")

    info("This is some debug output")
    warn("This might be a problem")
    error("This definitely is")
    logger.close()
