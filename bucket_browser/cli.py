from __future__ import annotations
"""Command-line shell over the bucket browser controller."""
import argparse
import getpass
import logging
import mimetypes
from pathlib import Path
import sys
from typing import Callable, Sequence, TextIO

from .controller import S3BrowserController
from .models import AWS_REGIONS, CredentialRecord, UploadItem, ValidationError
from .services import CatalogError, NotInitializedError, UploadBatchError
from .settings import SettingsStorage
from .ui_utils import (
    compose_s3_key,
    display_name,
    format_last_modified,
    format_size,
    load_package_info,
    sort_objects,
    suggest_download_filename,
)
from .vault import CorruptDataError, DecryptionUnavailableError, VaultError

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOT_CONFIGURED = 2

PromptFn = Callable[[str], str]


def build_parser() -> argparse.ArgumentParser:
    info = load_package_info()
    parser = argparse.ArgumentParser(prog="bucket-browser", description=info.summary)
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    configure = commands.add_parser("configure", help="store credentials for a bucket")
    configure.add_argument("--region", help="AWS region, e.g. us-east-1")
    configure.add_argument("--bucket", help="bucket name")
    configure.add_argument("--access-key-id", help="access key ID")
    configure.add_argument("--skip-test", action="store_true", help="do not test the connection")

    commands.add_parser("forget", help="delete stored credentials")
    commands.add_parser("status", help="show stored credentials and connectivity")

    ls = commands.add_parser("ls", help="list one level of the bucket")
    ls.add_argument("prefix", nargs="?", default="")
    ls.add_argument("--all", action="store_true", help="follow pagination to the end of the level")
    ls.add_argument("--token", help="continuation token from a previous page")
    ls.add_argument("--sort", choices=("name", "size", "date"), default="name")
    ls.add_argument("--reverse", action="store_true")

    put = commands.add_parser("put", help="upload local files")
    put.add_argument("files", nargs="+", type=Path)
    put.add_argument("--prefix", default="", help="destination folder")

    rm = commands.add_parser("rm", help="delete an object")
    rm.add_argument("key")

    cp = commands.add_parser("cp", help="copy an object inside the bucket")
    cp.add_argument("source")
    cp.add_argument("destination")

    mv = commands.add_parser("mv", help="rename an object inside the bucket")
    mv.add_argument("source")
    mv.add_argument("destination")

    mkdir = commands.add_parser("mkdir", help="create a folder marker")
    mkdir.add_argument("path")

    url = commands.add_parser("url", help="print a pre-signed download URL")
    url.add_argument("key")
    url.add_argument("--expires", type=int, default=None, help="lifetime in seconds")
    url.add_argument("--attachment", action="store_true", help="ask browsers to save the file")
    return parser


class BrowserShell:
    """Runs parsed commands against a controller and writes plain-text output."""

    def __init__(
        self,
        controller: S3BrowserController,
        *,
        out: TextIO | None = None,
        err: TextIO | None = None,
        prompt: PromptFn = input,
        secret_prompt: PromptFn = getpass.getpass,
    ):
        self._controller = controller
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self._prompt = prompt
        self._secret_prompt = secret_prompt

    def run(self, args: argparse.Namespace) -> int:
        handler = getattr(self, f"cmd_{args.command}")
        try:
            if args.command not in ("configure", "forget", "status"):
                self._controller.init()
            return handler(args)
        except NotInitializedError:
            self._error("No credentials configured. Run 'bucket-browser configure' first.")
            return EXIT_NOT_CONFIGURED
        except DecryptionUnavailableError as exc:
            self._error(f"{exc}. Run 'bucket-browser configure' to enter them again.")
            return EXIT_NOT_CONFIGURED
        except CorruptDataError as exc:
            self._error(f"Stored credentials are unusable: {exc}")
            return EXIT_NOT_CONFIGURED
        except (CatalogError, VaultError, ValueError, OSError) as exc:
            self._error(str(exc))
            return EXIT_FAILURE

    def cmd_configure(self, args: argparse.Namespace) -> int:
        record = CredentialRecord(
            access_key_id=(args.access_key_id or self._prompt("Access key ID: ")).strip(),
            secret_access_key=self._secret_prompt("Secret access key: ").strip(),
            region=(args.region or self._prompt_region()).strip(),
            bucket=(args.bucket or self._prompt("Bucket: ")).strip(),
        )
        try:
            if not args.skip_test and not self._controller.test_credentials(record):
                self._error(f"Unable to reach bucket '{record.bucket}' with these credentials")
                return EXIT_FAILURE
            self._controller.save_credentials(record)
        except ValidationError as exc:
            for name, message in exc.errors.items():
                self._error(f"{name}: {message}")
            return EXIT_FAILURE
        self._print(f"Credentials saved to {self._controller.storage_path}")
        return EXIT_OK

    def cmd_forget(self, args: argparse.Namespace) -> int:
        self._controller.delete_credentials()
        self._print("Stored credentials deleted")
        return EXIT_OK

    def cmd_status(self, args: argparse.Namespace) -> int:
        if not self._controller.has_credentials():
            self._print("No credentials stored")
            return EXIT_NOT_CONFIGURED
        record = self._controller.load_credentials()
        if record is None:
            self._print("No credentials stored")
            return EXIT_NOT_CONFIGURED
        self._controller.init()
        reachable = self._controller.test_connection()
        self._print(f"Bucket:     {record.bucket}")
        self._print(f"Region:     {record.region}")
        self._print(f"Access key: {record.access_key_id[:4]}{'*' * 16}")
        self._print(f"Reachable:  {'yes' if reachable else 'no'}")
        return EXIT_OK if reachable else EXIT_FAILURE

    def cmd_ls(self, args: argparse.Namespace) -> int:
        prefix = args.prefix
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        if args.all:
            listing = self._controller.list_level(prefix)
        else:
            listing = self._controller.list_objects(prefix, args.token)
        for folder in listing.folders:
            self._print(f"{'DIR':>10}  {'':<23}  {display_name(folder, prefix)}")
        for obj in sort_objects(listing.objects, args.sort, descending=args.reverse):
            self._print(
                f"{format_size(obj.size):>10}  {format_last_modified(obj.last_modified):<23}  "
                f"{display_name(obj.key, prefix)}"
            )
        if listing.is_truncated and listing.continuation_token:
            self._print(f"(more results: --token {listing.continuation_token})")
        return EXIT_OK

    def cmd_put(self, args: argparse.Namespace) -> int:
        items = [
            UploadItem(
                key=compose_s3_key(args.prefix, path.name),
                content=path.read_bytes(),
                content_type=_guess_content_type(path),
            )
            for path in args.files
        ]
        try:
            results = self._controller.upload_many(items)
        except UploadBatchError as exc:
            results = exc.results
        failed = 0
        for result in results:
            if result.ok:
                self._print(f"uploaded  {result.key}")
            else:
                failed += 1
                self._error(f"failed    {result.key}: {result.error}")
        return EXIT_FAILURE if failed else EXIT_OK

    def cmd_rm(self, args: argparse.Namespace) -> int:
        self._controller.delete_object(args.key)
        self._print(f"deleted   {args.key}")
        return EXIT_OK

    def cmd_cp(self, args: argparse.Namespace) -> int:
        self._controller.copy_object(args.source, args.destination)
        self._print(f"copied    {args.source} -> {args.destination}")
        return EXIT_OK

    def cmd_mv(self, args: argparse.Namespace) -> int:
        self._controller.rename_object(args.source, args.destination)
        self._print(f"moved     {args.source} -> {args.destination}")
        return EXIT_OK

    def cmd_mkdir(self, args: argparse.Namespace) -> int:
        folder_key = self._controller.create_folder(args.path)
        self._print(f"created   {folder_key}")
        return EXIT_OK

    def cmd_url(self, args: argparse.Namespace) -> int:
        filename = suggest_download_filename(args.key) if args.attachment else None
        self._print(self._controller.get_download_url(args.key, args.expires, filename=filename))
        return EXIT_OK

    def _prompt_region(self) -> str:
        self._print("Known regions:")
        for code, label in AWS_REGIONS:
            self._print(f"  {code:<16} {label}")
        return self._prompt("Region: ")

    def _print(self, message: str) -> None:
        print(message, file=self._out)

    def _error(self, message: str) -> None:
        print(message, file=self._err)


def _guess_content_type(path: Path) -> str | None:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = SettingsStorage().load()
    configure_logging("DEBUG" if args.verbose else settings.log_level)
    controller = S3BrowserController(settings=settings)
    try:
        return BrowserShell(controller).run(args)
    finally:
        controller.close()
