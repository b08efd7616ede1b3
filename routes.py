import shutil
from pathlib import Path
from typing import List, Optional
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Form
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool
from stacker import AstroStacker
from config import (
    TEMP_DIR, OUTPUT_DIR, SUPPORTED_INPUT_FORMATS, MAX_FILE_SIZE, MAX_FILES, DEFAULT_MERGE_METHOD,
    DEFAULT_DENOISE, DEFAULT_REMOVE_LIGHT_POLLUTION, DEFAULT_SUPERSAMPLE, DEFAULT_WHITE_BALANCE
)
from logger.backend_logger import backend_logger
from logger.frontend_logger import FrontendLogBuffer
from cleanup.cleanup_handler import cleanup_handler
from file_loader import FileLoader
from alignment.star_aligner import StarAligner
from alignment.star_detector import StarDetector

router = APIRouter()


def clean_file_list(values: Optional[List[str]]) -> List[str]:
    if not values:
        return []
    return [v for v in values if v.strip()]


def session_paths(session_id: str, file_names: List[str]) -> List[Path]:
    session_dir = TEMP_DIR / f"session_{session_id}"
    if not session_dir.exists():
        raise HTTPException(404, "Session not found.")
    paths = []
    for name in file_names:
        path = session_dir / Path(name).name  # no directory components from the client
        if not path.exists():
            raise HTTPException(404, f"File {name} not found in session {session_id}.")
        paths.append(path)
    return paths


def parse_threshold(threshold: float) -> float:
    if not 0.0 <= threshold < 1.0:
        raise HTTPException(422, "threshold must be in [0, 1); 0 selects it automatically.")
    return threshold


def get_star_aligner() -> StarAligner:
    """Aligner used by /align and /stack, built per request with the configured search settings."""
    return StarAligner()


@router.post("/upload")
async def upload_files(
    files: List[UploadFile] = File(...),
    session_id: str = Form(...)
):
    """Upload light frames for a session"""
    try:
        if len(files) > MAX_FILES:
            raise HTTPException(400, f"Too many files ({len(files)}), maximum is {MAX_FILES}.")

        session_dir = TEMP_DIR / f"session_{session_id}"
        session_dir.mkdir(parents=True, exist_ok=True)

        uploaded_files_info = []
        for file_obj in files:
            if file_obj.size is not None and file_obj.size > MAX_FILE_SIZE:
                raise HTTPException(400, f"File {file_obj.filename} too large (max {MAX_FILE_SIZE / (1024*1024)}MB)")

            file_name = Path(file_obj.filename).name
            if Path(file_name).suffix.lower() not in SUPPORTED_INPUT_FORMATS:
                raise HTTPException(400, f"Unsupported file format: {file_name}. Supported formats: {', '.join(sorted(SUPPORTED_INPUT_FORMATS))}")

            file_path = session_dir / file_name
            with open(file_path, "wb") as buffer:
                shutil.copyfileobj(file_obj.file, buffer)

            uploaded_files_info.append({"filename": file_name, "size": file_obj.size})
            backend_logger.info(f"Uploaded {file_name} to {session_dir}")

        return JSONResponse({
            "status": "success",
            "message": "Files uploaded successfully",
            "files": uploaded_files_info
        })
    except HTTPException as e:
        backend_logger.error(f"File upload error for session {session_id}: {e.detail}")
        raise e
    except Exception as e:
        backend_logger.error(f"Unexpected error during file upload for session {session_id}: {e}", exc_info=True)
        raise HTTPException(500, f"Internal server error during upload: {e}")


@router.post("/align")
async def align_images_endpoint(
    session_id: str = Form(...),
    light_files: List[str] = Form(...),
    threshold: float = Form(0.0),
    star_aligner: StarAligner = Depends(get_star_aligner)
):
    """
    Computes the offset of every light frame relative to the first one, without stacking.
    """
    try:
        paths = session_paths(session_id, clean_file_list(light_files))
        if not paths:
            raise HTTPException(422, "No light frames provided.")
        threshold = parse_threshold(threshold)

        stacker = AstroStacker(session_id, star_aligner=star_aligner)
        report = await run_in_threadpool(stacker.align_images, paths, threshold)
        for entry in report:
            if entry["difference_image"]:
                entry["difference_url"] = f"/output/session_{session_id}/{entry['difference_image']}"

        return JSONResponse({"status": "success", "frames": report})
    except HTTPException as e:
        backend_logger.error(f"Alignment error for session {session_id}: {e.detail}")
        raise e
    except ValueError as e:
        backend_logger.error(f"Alignment validation error for session {session_id}: {e}")
        raise HTTPException(400, str(e))
    except Exception as e:
        backend_logger.error(f"Unexpected error during alignment for session {session_id}: {e}", exc_info=True)
        raise HTTPException(500, f"Internal server error during alignment: {e}")


@router.post("/stack")
async def stack_images_endpoint(
    session_id: str = Form(...),
    light_files: List[str] = Form(...),
    merge_method: str = Form(DEFAULT_MERGE_METHOD),
    threshold: float = Form(0.0),
    output_format: str = Form("png"),
    denoise: bool = Form(DEFAULT_DENOISE),
    remove_light_pollution: bool = Form(DEFAULT_REMOVE_LIGHT_POLLUTION),
    supersample: bool = Form(DEFAULT_SUPERSAMPLE),
    white_balance: bool = Form(DEFAULT_WHITE_BALANCE),
    star_aligner: StarAligner = Depends(get_star_aligner)
):
    """
    Initiates the image stacking process.
    """
    try:
        paths = session_paths(session_id, clean_file_list(light_files))
        if not paths:
            raise HTTPException(422, "No light frames provided.")
        threshold = parse_threshold(threshold)

        stacker = AstroStacker(session_id, star_aligner=star_aligner)
        output_file, preview_file = await run_in_threadpool(
            stacker.stack_images,
            light_file_paths=paths,
            merge_method=merge_method,
            threshold=threshold,
            output_format=output_format,
            denoise=denoise,
            remove_light_pollution=remove_light_pollution,
            supersample=supersample,
            white_balance=white_balance
        )

        return JSONResponse({
            "status": "success",
            "message": "Image stacking completed successfully!",
            "download_url": f"/output/session_{session_id}/{output_file}",
            "preview_url": f"/output/session_{session_id}/{preview_file}"
        })
    except HTTPException as e:
        backend_logger.error(f"Stacking error for session {session_id}: {e.detail}")
        raise e
    except ValueError as e:
        backend_logger.error(f"Stacking validation error for session {session_id}: {e}")
        raise HTTPException(400, str(e))
    except Exception as e:
        backend_logger.error(f"Unexpected error during image stacking for session {session_id}: {e}", exc_info=True)
        raise HTTPException(500, f"Internal server error during stacking: {e}")


@router.post("/starmap")
async def star_map_endpoint(
    session_id: str = Form(...),
    file_name: str = Form(...),
    threshold: float = Form(0.0)
):
    """
    Extracts the star map of a single frame; returns its stars and a rendered map image.
    """
    try:
        path = session_paths(session_id, [file_name])[0]
        threshold = parse_threshold(threshold)

        loader = FileLoader()
        image = loader.load_image(path)
        star_map, used_threshold = StarDetector().extract(image, threshold)

        output_dir = OUTPUT_DIR / f"session_{session_id}"
        output_dir.mkdir(parents=True, exist_ok=True)
        map_path = output_dir / f"starmap_{path.stem}.png"
        loader.save_image(map_path, star_map.to_image())
        star_map.to_table().write(output_dir / f"starmap_{path.stem}.fits", format='fits', overwrite=True)

        return JSONResponse({
            "status": "success",
            "threshold": used_threshold,
            "stars": [{"x": s.x, "y": s.y, "size": s.size} for s in star_map.stars],
            "map_url": f"/output/session_{session_id}/{map_path.name}"
        })
    except HTTPException as e:
        backend_logger.error(f"Star map error for session {session_id}: {e.detail}")
        raise e
    except ValueError as e:
        backend_logger.error(f"Star map validation error for session {session_id}: {e}")
        raise HTTPException(400, str(e))
    except Exception as e:
        backend_logger.error(f"Unexpected error extracting star map for session {session_id}: {e}", exc_info=True)
        raise HTTPException(500, f"Internal server error during star map extraction: {e}")


@router.get("/logs/{session_id}")
async def get_logs(session_id: str):
    """Retrieve logs for a specific session"""
    log_buffer = FrontendLogBuffer(session_id)
    return JSONResponse({"logs": log_buffer.get_logs()})


@router.post("/cleanup_session/{session_id}")
async def cleanup_single_session(session_id: str, include_output: bool = False):
    """Clean up a specific session's temporary files."""
    try:
        removed = cleanup_handler.cleanup_session(session_id, include_output=include_output)
        return JSONResponse({"status": "success", "removed": removed, "message": f"Session {session_id} cleaned up."})
    except OSError as e:
        backend_logger.error(f"Error cleaning up session {session_id}: {e}")
        raise HTTPException(500, f"Error cleaning up session: {e}")
