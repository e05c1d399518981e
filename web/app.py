#!/usr/bin/env python3
"""
Smart Doc Tools - Flask Web Application

A local JSON API for compression, page extraction and images-to-PDF
conversion with progress tracking.
"""

import json
import logging
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Dict

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

# Add parent directory to path to import doctools
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from doctools import PDFSplitter, compress_file, images_to_pdf
from doctools.compressor import DEFAULT_QUALITY, classify_file, resolve_target
from doctools.imaging import (
    OutputFormat,
    default_output_format,
    is_image_file,
    resolve_output_format,
)
from doctools.splitter import PageRange, validate_ranges
from doctools.utils import get_output_path

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("doctools.web")

app = Flask(__name__)
CORS(app)

# Configuration
UPLOAD_FOLDER = Path(tempfile.gettempdir()) / "doctools_uploads"
OUTPUT_FOLDER = Path(tempfile.gettempdir()) / "doctools_output"
MAX_CONTENT_LENGTH = 500 * 1024 * 1024  # 500MB max upload
MAX_FILE_AGE_HOURS = 1

app.config["UPLOAD_FOLDER"] = UPLOAD_FOLDER
app.config["OUTPUT_FOLDER"] = OUTPUT_FOLDER
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH

# Job tracking
jobs: Dict[str, dict] = {}
jobs_lock = threading.Lock()


def upload_folder() -> Path:
    folder = Path(app.config["UPLOAD_FOLDER"])
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def output_folder() -> Path:
    folder = Path(app.config["OUTPUT_FOLDER"])
    folder.mkdir(parents=True, exist_ok=True)
    return folder


def cleanup_old_files(max_age_hours: int = MAX_FILE_AGE_HOURS):
    """Clean up files older than max_age_hours."""
    now = time.time()
    max_age_seconds = max_age_hours * 3600

    for folder in [upload_folder(), output_folder()]:
        for file_path in folder.iterdir():
            if file_path.is_file() and now - file_path.stat().st_mtime > max_age_seconds:
                try:
                    file_path.unlink()
                except OSError as e:
                    logger.warning("Could not remove old file %s: %s", file_path, e)


def safe_upload_name(filename: str, default: str = "upload") -> str:
    """
    Sanitize an uploaded file name while keeping its extension.

    secure_filename drops non-ASCII characters, which can eat the whole stem
    and leave the extension as the name.
    """
    original = Path(filename)
    stem = secure_filename(original.stem) or default
    suffix = secure_filename(original.suffix.lstrip(".")).lower()
    return f"{stem}.{suffix}" if suffix else stem


def save_upload(file_storage) -> Path:
    """Store an uploaded file under a unique name and return its path."""
    filename = safe_upload_name(file_storage.filename)
    file_path = upload_folder() / f"{uuid.uuid4()}_{filename}"
    file_storage.save(file_path)
    return file_path


def error_response(message: str, status: int = 400):
    return jsonify({"error": message}), status


def start_job(kind: str, download_name: str, work: Callable) -> str:
    """
    Register a job and run ``work(job_id, progress_callback)`` in a thread.

    ``work`` returns (output_path, result_dict).
    """
    job_id = str(uuid.uuid4())

    with jobs_lock:
        jobs[job_id] = {
            "kind": kind,
            "status": "starting",
            "stage": "Initializing",
            "progress": 0,
            "download_name": download_name,
            "result": None,
            "error": None,
            "output_file": None,
        }

    thread = threading.Thread(target=run_job, args=(job_id, work), daemon=True)
    thread.start()
    return job_id


def run_job(job_id: str, work: Callable):
    """Run a job in background."""
    def progress_callback(stage: str, percentage: int):
        with jobs_lock:
            if job_id in jobs:
                jobs[job_id]["stage"] = stage
                jobs[job_id]["progress"] = percentage
                jobs[job_id]["status"] = "processing"

    try:
        output_path, result = work(job_id, progress_callback)

        with jobs_lock:
            jobs[job_id]["status"] = "completed"
            jobs[job_id]["stage"] = "Complete"
            jobs[job_id]["progress"] = 100
            jobs[job_id]["result"] = result
            jobs[job_id]["output_file"] = str(output_path)

    except Exception as e:
        logger.error("Job %s failed: %s", job_id, e, exc_info=True)
        with jobs_lock:
            jobs[job_id]["status"] = "failed"
            jobs[job_id]["stage"] = "Error"
            jobs[job_id]["error"] = str(e)


@app.route("/api/compress", methods=["POST"])
def start_compression():
    """Start a compression job for one image or PDF."""
    cleanup_old_files()

    file = request.files.get("file")
    if file is None or file.filename == "":
        return error_response("No file provided")

    try:
        file_type = classify_file(file.filename)
        output_format = request.form.get("format") or None
        if output_format:
            output_format = resolve_output_format(output_format)
        quality = float(request.form.get("quality", DEFAULT_QUALITY))
        if not 0.1 <= quality <= 1.0:
            raise ValueError("Quality must be between 0.1 and 1.0")
    except ValueError as e:
        return error_response(str(e))

    file_path = save_upload(file)

    try:
        target_bytes = resolve_target(request.form.get("target_size", ""), file_path.stat().st_size)
    except ValueError as e:
        file_path.unlink()
        return error_response(str(e))

    if file_type == "pdf":
        extension = "pdf"
    else:
        output_format = output_format or default_output_format(file.filename)
        extension = OutputFormat.EXTENSIONS[output_format]
    download_name = get_output_path(
        safe_upload_name(file.filename, "file"), None, extension=extension
    ).name

    def work(job_id: str, progress_callback):
        output_path = output_folder() / f"{job_id}_{download_name}"
        result = compress_file(
            file_path,
            output_path,
            target_size=target_bytes,
            quality=quality,
            output_format=output_format,
            progress_callback=progress_callback,
        )
        return output_path, result.to_dict()

    return jsonify({"job_id": start_job("compress", download_name, work)})


@app.route("/api/split", methods=["POST"])
def start_split():
    """Start a page extraction job."""
    cleanup_old_files()

    file = request.files.get("file")
    if file is None or file.filename == "":
        return error_response("No file provided")

    try:
        raw_ranges = json.loads(request.form.get("ranges", "[]"))
        ranges = [
            PageRange(start=int(r["start"]), end=int(r["end"]), name=str(r.get("name", "")))
            for r in raw_ranges
        ]
    except (ValueError, TypeError, KeyError):
        return error_response("Ranges must be a JSON list of {start, end, name} objects")

    file_path = save_upload(file)

    try:
        splitter = PDFSplitter(file_path)
        validate_ranges(splitter.page_count, ranges)
    except ValueError as e:
        file_path.unlink()
        return error_response(str(e))

    source_stem = Path(safe_upload_name(file.filename, "document")).stem

    def work(job_id: str, progress_callback):
        splitter.progress_callback = progress_callback
        files = splitter.extract(ranges)
        output_path = splitter.save(files, output_folder() / job_id, archive_stem=source_stem)
        return output_path, {
            "total_pages": splitter.page_count,
            "files": [f.to_dict() for f in files],
        }

    return jsonify({"job_id": start_job("split", "", work)})


@app.route("/api/convert", methods=["POST"])
def start_conversion():
    """Start an images-to-PDF job."""
    cleanup_old_files()

    uploads = [f for f in request.files.getlist("files") if f.filename]
    if not uploads:
        return error_response("No files provided")

    uploads = [f for f in uploads if is_image_file(f.filename)]
    if not uploads:
        return error_response("No images to convert. Please add JPG, PNG, GIF, BMP or WEBP files.")

    image_paths = [save_upload(f) for f in uploads]

    def work(job_id: str, progress_callback):
        output_path = output_folder() / f"{job_id}_converted-images.pdf"
        result = images_to_pdf(image_paths, output_path, progress_callback=progress_callback)
        return output_path, result.to_dict()

    return jsonify({"job_id": start_job("convert", "converted-images.pdf", work)})


@app.route("/api/job/<job_id>")
def get_job_status(job_id: str):
    """Get job status and progress."""
    with jobs_lock:
        if job_id not in jobs:
            return error_response("Job not found", 404)

        job = jobs[job_id].copy()

    job.pop("output_file", None)
    return jsonify(job)


@app.route("/api/download/<job_id>")
def download_file(job_id: str):
    """Download a job's output file."""
    with jobs_lock:
        if job_id not in jobs:
            return error_response("Job not found", 404)

        job = jobs[job_id].copy()

    if job["status"] != "completed":
        return error_response("Job not completed")

    file_path = Path(job["output_file"])
    if not file_path.exists():
        return error_response("File no longer available", 404)

    return send_file(
        file_path,
        as_attachment=True,
        download_name=job["download_name"] or file_path.name,
    )


if __name__ == "__main__":
    print("Starting Smart Doc Tools Web Server...")
    print("Open http://localhost:5000 in your browser")
    app.run(debug=True, host="127.0.0.1", port=5000)
