import random
from pathlib import Path

import fitz  # PyMuPDF
import pytest
from PIL import Image


def noise_image(size=(400, 300), mode="RGB", seed=0) -> Image.Image:
    """Random pixels, so encoders cannot shrink the image to nothing."""
    width, height = size
    channels = len(mode)
    data = random.Random(seed).randbytes(width * height * channels)
    return Image.frombytes(mode, size, data)


@pytest.fixture
def make_image(tmp_path: Path):
    def _make(name="photo.jpg", size=(400, 300), mode="RGB", seed=0, **save_kwargs) -> Path:
        path = tmp_path / name
        img = noise_image(size, mode, seed)
        if path.suffix.lower() in (".jpg", ".jpeg"):
            save_kwargs.setdefault("quality", 95)
        img.save(path, **save_kwargs)
        return path
    return _make


@pytest.fixture
def make_pdf(tmp_path: Path):
    def _make(name="doc.pdf", pages=10, with_image=False) -> Path:
        path = tmp_path / name
        with fitz.open() as doc:
            for number in range(1, pages + 1):
                page = doc.new_page()
                page.insert_text((72, 72), f"Page {number}")
                if with_image:
                    img_path = tmp_path / f"_embed_{number}.png"
                    noise_image((300, 300), seed=number).save(img_path)
                    page.insert_image(fitz.Rect(72, 100, 372, 400), filename=str(img_path))
            doc.save(path)
        return path
    return _make
