from pathlib import Path

PROJECT_DIR = Path(__file__).parent.parent

DATA_DIR = PROJECT_DIR / "data"
RAW_DIR = DATA_DIR / "raw"
OUTPUT_DIR = DATA_DIR / "output"
FIGS_DIR = DATA_DIR / "figures"
MAPS_DIR = DATA_DIR / "maps"
LOGS_DIR = PROJECT_DIR / "logs"

def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists before use."""
    path.mkdir(parents=True, exist_ok=True)
    return path

def get_run_output_dir(tag: str, create: bool = False) -> Path | None:
    """Return directory for one analysis run's outputs (tables, layers)."""
    dir_path = OUTPUT_DIR / tag
    if create:
        return ensure_dir(dir_path)
    elif dir_path.exists():
        return dir_path
    else:
        print(f"[{tag}] WARNING: output directory does not exist. Use create=True to generate.")
        return None

if __name__ == "__main__":
    print(f"Project directory: {PROJECT_DIR}")
