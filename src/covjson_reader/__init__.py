from covjson_reader._version import version as __version__
from covjson_reader.api.asynchronous import read
from covjson_reader.core.collection import CollectionQuery, CoverageCollection
from covjson_reader.core.config import config
from covjson_reader.core.coverage import Coverage
from covjson_reader.core.domain import Domain
from covjson_reader.core.range import NdArrayRange, TiledRange


def print_debug_info() -> None:
    """
    Print version info for use in bug reports.
    """
    import platform
    from importlib.metadata import PackageNotFoundError, version

    def print_packages(packages: list[str]) -> None:
        not_installed = []
        for package in packages:
            try:
                print(f"{package}: {version(package)}")
            except PackageNotFoundError:
                not_installed.append(package)
        if not_installed:
            print("\n**Not Installed:**")
            for package in not_installed:
                print(package)

    required = [
        "packaging",
        "numpy",
        "typing_extensions",
        "donfig",
        "uritemplate",
    ]
    optional = [
        "fsspec",
        "aiohttp",
    ]

    print(f"platform: {platform.platform()}")
    print(f"python: {platform.python_version()}")
    print(f"covjson_reader: {__version__}\n")
    print("**Required dependencies:**")
    print_packages(required)
    print("\n**Optional dependencies:**")
    print_packages(optional)


__all__ = [
    "CollectionQuery",
    "Coverage",
    "CoverageCollection",
    "Domain",
    "NdArrayRange",
    "TiledRange",
    "__version__",
    "config",
    "print_debug_info",
    "read",
]
