import importlib.metadata

import mklein


class VersionUtil:
    @staticmethod
    def get_mklein_version() -> str:
        try:
            return importlib.metadata.version("mklein")
        except importlib.metadata.PackageNotFoundError:
            return mklein.__version__
