#!/usr/bin/env python3
"""Validate vehicle store files and an optional catalog file."""
import argparse
import sys
from pathlib import Path

import yaml
from jsonschema import validate, ValidationError

from upkeep import UpkeepError, load_catalog


def load_schema() -> dict:
    """Load the JSON schema from schema.yaml."""
    schema_path = Path(__file__).parent / "schema.yaml"
    with open(schema_path) as f:
        return yaml.safe_load(f)


def validate_vehicle_file(filepath: Path, schema: dict) -> list[str]:
    """Validate a single vehicle YAML file. Returns list of errors."""
    errors = []
    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
        validate(instance=data, schema=schema)
    except yaml.YAMLError as e:
        errors.append(f"YAML parse error: {e}")
    except ValidationError as e:
        errors.append(f"Schema validation error: {e.message}")
        if e.path:
            errors.append(f"  at path: {'.'.join(str(p) for p in e.path)}")
    except OSError as e:
        errors.append(f"Error: {e}")
    return errors


def validate_catalog_file(filepath: Path) -> list[str]:
    """Validate a catalog YAML file. Returns list of errors."""
    try:
        load_catalog(filepath)
    except yaml.YAMLError as e:
        return [f"YAML parse error: {e}"]
    except UpkeepError as e:
        return [f"Catalog validation error: {e}"]
    except OSError as e:
        return [f"Error: {e}"]
    return []


def main(argv=None):
    """Validate all vehicle YAML files in a directory (default: vehicles/)."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "directory",
        nargs="?",
        type=Path,
        default=Path(__file__).parent / "vehicles",
        help="Directory of vehicle YAML files",
    )
    parser.add_argument("--catalog", type=Path, help="Catalog YAML file to check")
    args = parser.parse_args(argv)

    all_valid = True
    if args.catalog:
        errors = validate_catalog_file(args.catalog)
        if errors:
            print(f"FAIL: {args.catalog.name}")
            for error in errors:
                print(f"  {error}")
            all_valid = False
        else:
            print(f"OK: {args.catalog.name}")

    if not args.directory.exists():
        print(f"Error: vehicles directory not found: {args.directory}")
        return 1

    yaml_files = list(args.directory.glob("*.yaml")) + list(args.directory.glob("*.yml"))

    if not yaml_files:
        print(f"Warning: No YAML files found in {args.directory}")
        return 0 if all_valid else 1

    schema = load_schema()
    for filepath in sorted(yaml_files):
        errors = validate_vehicle_file(filepath, schema)
        if errors:
            print(f"FAIL: {filepath.name}")
            for error in errors:
                print(f"  {error}")
            all_valid = False
        else:
            print(f"OK: {filepath.name}")

    return 0 if all_valid else 1


if __name__ == "__main__":
    sys.exit(main())
