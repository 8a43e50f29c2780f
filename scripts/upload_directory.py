#!/usr/bin/env python3
"""
Upload a local directory to the configured OSS bucket.

Every file under the local directory is written below a remote prefix,
keeping its relative path. The public URL of each object is printed.

Usage:
    python scripts/upload_directory.py ./dist static/site
    python scripts/upload_directory.py ./dist static/site --delete-prefix --public

Requires:
    - .env file with OSS credentials (or OSS_MOCK_MODE=true for a dry run
      against in-memory storage)
"""

import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from ossadapter.config.settings import get_settings  # noqa: E402
from ossadapter.core.errors import StorageError  # noqa: E402
from ossadapter.infrastructure.storage.adapter import OssAdapter  # noqa: E402
from ossadapter.infrastructure.storage.buckets import create_adapter  # noqa: E402


def upload_directory(
    adapter: OssAdapter,
    local_dir: Path,
    prefix: str,
    delete_prefix: bool = False,
    public: bool = False,
) -> tuple[list[str], int]:
    """
    Upload every file below ``local_dir`` under ``prefix``.

    Returns the uploaded remote paths and the number of errors.
    """
    prefix = prefix.strip("/")

    if delete_prefix and prefix:
        removed = adapter.delete_directory(prefix)
        print(f"Deleted {removed} existing object(s) under {prefix}/")

    options = {"visibility": "public"} if public else None
    uploaded: list[str] = []
    errors = 0

    for file_path in sorted(p for p in local_dir.rglob("*") if p.is_file()):
        relative = file_path.relative_to(local_dir).as_posix()
        remote = f"{prefix}/{relative}" if prefix else relative
        try:
            with open(file_path, "rb") as f:
                adapter.write_stream(remote, f, options)
        except StorageError as e:
            print(f"[ERR] {relative}: {e.message}")
            errors += 1
            continue

        uploaded.append(remote)
        print(f"[OK] {adapter.get_url(remote)}")

    return uploaded, errors


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Upload a local directory to OSS")
    parser.add_argument("directory", help="Local directory to upload")
    parser.add_argument("prefix", nargs="?", default="", help="Remote key prefix")
    parser.add_argument("--bucket", help="Named bucket profile from OSS_BUCKETS")
    parser.add_argument("--delete-prefix", action="store_true", help="Delete the remote prefix first")
    parser.add_argument("--public", action="store_true", help="Upload with public-read ACL")
    args = parser.parse_args()

    local_dir = Path(args.directory)
    if not local_dir.is_dir():
        print(f"ERROR: Not a directory: {args.directory}")
        sys.exit(1)

    settings = get_settings()
    missing = settings.validate_required_fields()
    if missing:
        print(f"ERROR: Missing configuration: {', '.join(missing)}")
        sys.exit(1)

    try:
        adapter = create_adapter(
            settings.default_profile,
            buckets=settings.bucket_profiles,
            mock_mode=settings.oss_mock_mode,
        )
        if args.bucket:
            adapter = adapter.bucket(args.bucket)

        print(f"Uploading {local_dir} to {adapter.bucket_name}:{args.prefix or '/'}")
        uploaded, errors = upload_directory(
            adapter,
            local_dir,
            args.prefix,
            delete_prefix=args.delete_prefix,
            public=args.public,
        )
    except (StorageError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print("\n=== Upload Complete ===")
    print(f"Uploaded: {len(uploaded)}")
    print(f"Errors: {errors}")

    sys.exit(0 if errors == 0 else 1)


if __name__ == "__main__":
    main()
