"""Download the data sources declared by a part.

url sources are fetched over HTTP; a bare file name is looked up in the
phovea data package bucket. repo sources are cloned (once) and their data/
folder is copied as <dest>/<name>.
"""

import asyncio
import shutil
from pathlib import Path

import requests

from product_builder.errors import NetworkError
from product_builder.models.config import DataSource
from product_builder.models.part import AdditionalRepo, Part
from product_builder.services.process import CommandRunner
from product_builder.services.repo_resolver import repo_name, resolve_repo_url
from product_builder.services.workspace import clone_repo

DATA_PACKAGE_BASE_URL = "https://s3.eu-central-1.amazonaws.com/phovea-data-packages/"
_CHUNK_SIZE = 64 * 1024


async def fetch_data(part: Part, dest: Path, runner: CommandRunner) -> None:
    for source in part.data:
        if source.type == "url":
            url = data_url(source.url)
            runner.reporter.info(f"download file {url}", part)
            await asyncio.to_thread(download, url, dest / download_name(source.url), runner.params.timeout)
        else:
            await fetch_repo_data(source, part, dest, runner)


async def fetch_repo_data(source: DataSource, part: Part, dest: Path, runner: CommandRunner) -> None:
    name = source.name or repo_name(source.repo)
    checkout = part.tmp_dir / name
    if not checkout.exists():
        params = runner.params
        repo = AdditionalRepo(
            key=name,
            repo=source.repo,
            branch=source.branch,
            repo_name=name,
            repo_url=resolve_repo_url(source.repo, params.use_ssh),
        )
        await clone_repo(repo, part.tmp_dir, runner, part)
    await asyncio.to_thread(shutil.copytree, checkout / "data", dest / name, dirs_exist_ok=True)


def data_url(url: str) -> str:
    if url.startswith("http"):
        return url
    return DATA_PACKAGE_BASE_URL + url


def download_name(url: str) -> str:
    if not url.startswith("http"):
        return url
    return url.rstrip("/").rsplit("/", 1)[-1]


def download(url: str, target: Path, timeout: float | None = None) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(target, "wb") as f:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    f.write(chunk)
    except requests.RequestException as e:
        raise NetworkError(f"Download of {url} failed: {e}")
