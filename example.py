#!/usr/bin/env python3
"""
Example chef script.

Every script gets its own store and binary directory, named after the
script file. Run it like the chef CLI:

    example.py update
    example.py run imhex
    example.py list
"""

import sys

from chef import (
    Chef,
    DesktopFile,
    DirInstall,
    ExeInstall,
    Recipe,
    download_file,
    get_latest_github_release,
    get_latest_npm_version,
    run_shell,
)


async def imhex_version():
    return await get_latest_github_release("WerWolv/ImHex")


async def imhex_download(request):
    version = request.latest_version.lstrip("v")
    name = f"imhex-{version}-x86_64.AppImage"
    await download_file(
        f"https://github.com/WerWolv/ImHex/releases/download/v{version}/{name}",
        name,
        request.token,
        request.on_progress,
    )
    return ExeInstall(exe=name)


async def typst_version():
    return await get_latest_github_release("typst/typst")


async def typst_download(request):
    archive = "typst-x86_64-unknown-linux-musl.tar.xz"
    await download_file(
        f"https://github.com/typst/typst/releases/download/{request.latest_version}/{archive}",
        archive,
        request.token,
        request.on_progress,
    )
    await run_shell(f"tar -xf {archive}", request.token)
    return DirInstall(path="typst-x86_64-unknown-linux-musl", exe="typst")


async def prettier_version():
    return await get_latest_npm_version("prettier")


async def prettier_download(request):
    await run_shell(f"npm install -g prettier@{request.latest_version}", request.token)
    return {"extern": "prettier"}


chef = Chef(__file__)
chef.add_many([
    Recipe(
        name="imhex",
        download=imhex_download,
        version=imhex_version,
        change_log=lambda v: f"https://github.com/WerWolv/ImHex/releases/tag/{v}",
        desktop_file=DesktopFile(name="ImHex", comment="Hex editor", categories="Development;"),
    ),
    Recipe(
        name="typst",
        download=typst_download,
        version=typst_version,
        description="Markup-based typesetting system",
    ),
    Recipe(
        name="prettier",
        download=prettier_download,
        version=prettier_version,
        cmd_args=("--no-color",),
    ),
])


if __name__ == "__main__":
    sys.exit(chef.main())
