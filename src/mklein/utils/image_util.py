import json
import logging
from pathlib import Path

import piexif
import PIL.Image

from mklein.utils.exceptions import BufferIOError
from mklein.utils.raster_image import RasterImage

log = logging.getLogger(__name__)

EXIF_IFD_POINTER = 0x8769


class ImageUtil:
    @staticmethod
    def load(path: str | Path) -> RasterImage:
        try:
            with PIL.Image.open(path) as image:
                return RasterImage.from_pil(image)
        except (OSError, ValueError) as e:
            raise BufferIOError(f"Could not read image {path}: {e}") from e

    @staticmethod
    def save(
        image: RasterImage,
        path: str | Path,
        metadata: dict | None = None,
        export_json_metadata: bool = False,
        overwrite: bool = True,
    ) -> bool:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_name = file_path.stem
        file_extension = file_path.suffix

        # If a file already exists and overwrite is False, create a new name with a counter
        if not overwrite:
            counter = 1
            while file_path.exists():
                file_path = file_path.with_name(f"{file_name}_{counter}{file_extension}")
                counter += 1

        try:
            image.to_pil().save(file_path)
            log.info(f"Image saved successfully at: {file_path}")

            if export_json_metadata and metadata is not None:
                with open(file_path.with_suffix(".json"), "w") as json_file:
                    json.dump(metadata, json_file, indent=4)

            if metadata is not None and file_extension.lower() in {".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff"}:
                ImageUtil._embed_metadata(metadata, file_path)
                log.info(f"Metadata embedded successfully at: {file_path}")
        except (OSError, ValueError) as e:
            log.error(f"Error saving image: {e}")
            return False
        return True

    @staticmethod
    def load_metadata(path: str | Path) -> dict | None:
        try:
            with PIL.Image.open(path) as image:
                user_comment = image.getexif().get_ifd(EXIF_IFD_POINTER).get(piexif.ExifIFD.UserComment)
        except (OSError, ValueError) as e:
            raise BufferIOError(f"Could not read image {path}: {e}") from e
        if not user_comment:
            return None
        # Strip the 8 byte character code prefix
        return json.loads(user_comment[8:].decode("utf-8"))

    @staticmethod
    def _embed_metadata(metadata: dict, path: Path) -> None:
        user_comment_bytes = b"ASCII\x00\x00\x00" + json.dumps(metadata).encode("utf-8")
        exif_bytes = piexif.dump({"Exif": {piexif.ExifIFD.UserComment: user_comment_bytes}})
        with PIL.Image.open(path) as image:
            image.load()
            image.save(path, exif=exif_bytes)
