# Vaultix - Command Line Entry Point
#
# Every command that touches vault content first performs one governed
# unlock attempt. Credentials, passphrases and recovery codes are read with
# getpass and never accepted as arguments.

import argparse
import getpass
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from . import __version__
from .auth.auth_config import AuthMethod
from .auth.governor import AuthOutcome
from .config import VaultConfig
from .exceptions import VaultixError
from .service import VaultService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaultix",
        description="Vaultix - personal encrypted file vault",
    )
    parser.add_argument("--data-dir", type=Path, help="Vault data directory (default: $VAULTIX_DATA_DIR or ~/.vaultix)")
    parser.add_argument("--env-file", type=Path, help="Load VAULTIX_* settings from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics to stderr")
    parser.add_argument("--version", action="version", version=f"Vaultix v{__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    setup = sub.add_parser("setup", help="Create or replace the unlock credential")
    setup.add_argument("--method", choices=[m.value for m in AuthMethod], default=AuthMethod.PIN.value)

    sub.add_parser("status", help="Show lock state and storage usage")

    add = sub.add_parser("add", help="Encrypt a file into the vault")
    add.add_argument("path", type=Path)
    add.add_argument("--folder", help="Target folder id")
    add.add_argument("--mime", help="MIME type (guessed from the name if omitted)")

    ls = sub.add_parser("list", help="List vault files")
    ls.add_argument("--search", help="Case-insensitive match on names and tags")

    extract = sub.add_parser("extract", help="Decrypt a vault file to disk")
    extract.add_argument("file_id")
    extract.add_argument("output", type=Path)

    delete = sub.add_parser("delete", help="Move a file to the recycle bin")
    delete.add_argument("file_id")
    delete.add_argument("--permanent", action="store_true", help="Skip the recycle bin")

    trash = sub.add_parser("trash", help="Recycle bin")
    trash_sub = trash.add_subparsers(dest="trash_command", required=True)
    trash_sub.add_parser("list")
    trash_restore = trash_sub.add_parser("restore")
    trash_restore.add_argument("file_id")
    trash_sub.add_parser("empty")

    backup = sub.add_parser("backup", help="Encrypted backups")
    backup_sub = backup.add_subparsers(dest="backup_command", required=True)
    create = backup_sub.add_parser("create")
    create.add_argument("--no-settings", action="store_true", help="Leave settings out of the backup")
    create.add_argument("--cloud", action="store_true", help="Upload after creating")
    backup_sub.add_parser("list")
    restore = backup_sub.add_parser("restore")
    restore.add_argument("backup_id")
    backup_delete = backup_sub.add_parser("delete")
    backup_delete.add_argument("backup_id")

    sub.add_parser("reset", help="Clear a lockout with the recovery code")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = VaultConfig.from_env(env_file=args.env_file)
        if args.data_dir is not None:
            config = replace(config, data_dir=args.data_dir, log_dir=args.data_dir / "audit_logs")
        service = VaultService(config)
    except VaultixError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        return _dispatch(service, args)
    except VaultixError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        service.close()


def _dispatch(service: VaultService, args) -> int:
    if args.command == "setup":
        return _cmd_setup(service, args)
    if args.command == "status":
        return _cmd_status(service)
    if args.command == "reset":
        code = getpass.getpass("Recovery code: ")
        if service.reset_lockout(code):
            print("Lockout cleared.")
            return 0
        print("Recovery code rejected.", file=sys.stderr)
        return 1

    if not _unlock(service):
        return 1

    if args.command == "add":
        vault_file = service.store.add_file(
            args.path.read_bytes(), args.path.name, mime_type=args.mime, folder_id=args.folder
        )
        print(vault_file.id)
    elif args.command == "list":
        files = service.store.search_files(args.search) if args.search else service.store.list_files()
        for f in files:
            print(f"{f.id}  {f.size:>10}  {f.type.value:<8}  {f.name}")
    elif args.command == "extract":
        args.output.write_bytes(service.store.read_file(args.file_id))
        print(f"Wrote {args.output}")
    elif args.command == "delete":
        if not service.store.delete_file(args.file_id, permanent=args.permanent):
            print(f"No such file: {args.file_id}", file=sys.stderr)
            return 1
    elif args.command == "trash":
        return _cmd_trash(service, args)
    elif args.command == "backup":
        return _cmd_backup(service, args)
    return 0


def _unlock(service: VaultService) -> bool:
    if not service.is_set_up:
        print("Vault is not set up. Run 'vaultix setup' first.", file=sys.stderr)
        return False
    result = service.unlock(getpass.getpass("Credential: "))
    if result.ok:
        return True
    if result.outcome is AuthOutcome.LOCKED_OUT:
        print("Vault is locked out. Use 'vaultix reset' with your recovery code.", file=sys.stderr)
    elif result.outcome is AuthOutcome.SELF_DESTRUCTED:
        print("Too many failed attempts. Vault data has been destroyed.", file=sys.stderr)
    elif result.remaining:
        print(f"Wrong credential. {result.remaining} attempts left.", file=sys.stderr)
    else:
        print("Wrong credential. Vault is now locked out.", file=sys.stderr)
    return False


def _cmd_setup(service: VaultService, args) -> int:
    if service.is_set_up and not _unlock(service):
        return 1
    first = getpass.getpass("New credential: ")
    if first != getpass.getpass("Repeat credential: "):
        print("Credentials do not match.", file=sys.stderr)
        return 1
    service.setup_credential(first, args.method)
    code = service.issue_recovery_code()
    print("Credential saved.")
    print(f"Recovery code (shown once, store it offline): {code}")
    return 0


def _cmd_status(service: VaultService) -> int:
    print(f"Set up:    {'yes' if service.is_set_up else 'no'}")
    print(f"State:     {service.state.value}")
    print(f"Attempts:  {service.governor.attempts}/{service.auth_config.max_attempts}")
    print(f"Break-ins: {len(service.break_in_log.list_records())}")
    return 0


def _cmd_trash(service: VaultService, args) -> int:
    bin_ = service.recycle_bin
    if args.trash_command == "list":
        for item in bin_.list_items():
            print(f"{item.id}  {item.file.name}  ({bin_.remaining_days(item)} days left)")
    elif args.trash_command == "restore":
        restored = service.store.restore_from_recycle_bin(args.file_id)
        print(f"Restored {restored.name}")
    elif args.trash_command == "empty":
        print(f"Removed {bin_.empty_recycle_bin()} files.")
    return 0


def _cmd_backup(service: VaultService, args) -> int:
    engine = service.backups
    if args.backup_command == "list":
        for meta in engine.list_backups():
            print(f"{meta.id}  {meta.timestamp}  {meta.type.value:<6}  {meta.file_count} files  {meta.total_size} bytes")
        return 0
    if args.backup_command == "delete":
        if not engine.delete_backup(args.backup_id):
            print(f"No such backup: {args.backup_id}", file=sys.stderr)
            return 1
        return 0

    passphrase = getpass.getpass("Backup passphrase: ")
    if args.backup_command == "create":
        if args.cloud:
            meta = engine.create_cloud_backup(passphrase, include_settings=not args.no_settings)
        else:
            meta = engine.create_backup(passphrase, include_settings=not args.no_settings)
        print(meta.id)
    elif args.backup_command == "restore":
        def show(progress):
            if progress.error is None:
                print(f"[{progress.progress:>3}%] {progress.stage.value} {progress.current_file or ''}".rstrip())

        result = engine.restore_backup(args.backup_id, passphrase, on_progress=show)
        print(f"Restored {result.files_restored} files and {result.folders_restored} folders.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
