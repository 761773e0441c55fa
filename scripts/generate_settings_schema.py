import argparse
from pathlib import Path

from src.config_schema import Settings


def main():
    parser = argparse.ArgumentParser(description="Write the JSON schema of settings.yaml")
    parser.add_argument("output", type=Path, nargs="?", default=Path("settings.schema.yaml"))
    args = parser.parse_args()
    Settings.save_schema(args.output)
    print(f"Schema saved to {args.output}")


if __name__ == "__main__":
    main()
