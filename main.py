from dotenv import load_dotenv

load_dotenv(override=True)

from authgate.config import load_settings
from authgate.core import run_gate

def main():
    settings = load_settings()
    run_gate(settings)

if __name__ == "__main__":
    main()
