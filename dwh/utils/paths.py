from pathlib import Path

# Define the package root directory
ROOT_DIR = Path(__file__).parent.parent

# Default locations for raw extracts, the local warehouse file and run outputs
DATA_DIR = ROOT_DIR / "data"
RAW_DIR = DATA_DIR / "raw"
OUTPUTS_DIR = ROOT_DIR / "outputs"
DEFAULT_SQLITE_PATH = ROOT_DIR.parent / "datawarehouse.db"
