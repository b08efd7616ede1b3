import numpy as np
import pytest
from astropy.io import fits

import logger.frontend_logger as frontend_logger
import stacker as stacker_module
from alignment.star_aligner import StarAligner
from conftest import make_star_field
from file_loader import FileLoader
from stacker import AstroStacker


@pytest.fixture
def session(tmp_path, monkeypatch):
    """Writes three light frames (one without stars) and isolates session output and logs."""
    monkeypatch.setattr(stacker_module, "OUTPUT_DIR", tmp_path / "output")
    monkeypatch.setattr(frontend_logger, "LOGS_DIR", tmp_path)

    loader = FileLoader()
    frames = [make_star_field(), make_star_field(shift=(1, 2)), np.zeros((80, 80), dtype=np.float32)]
    paths = []
    for i, frame in enumerate(frames):
        path = tmp_path / f"light_{i}.png"
        loader.save_image(path, np.dstack([frame] * 3))
        paths.append(path)

    aligner = StarAligner(half_window=3, max_rotation=1, max_workers=1)
    return AstroStacker("test", star_aligner=aligner), paths


class TestAstroStacker:

    def test_stack_writes_result_and_preview(self, session):
        stacker, paths = session
        output_name, preview_name = stacker.stack_images(paths, merge_method="average", output_format="png")

        out_dir = stacker.session_output_dir
        assert (out_dir / output_name).exists()
        assert (out_dir / preview_name).exists()
        result = FileLoader().load_image(out_dir / output_name)
        assert result.shape == (80, 80, 3)

        messages = [entry["message"] for entry in stacker.log_buffer.get_logs()]
        assert any("Frame 3 skipped" in m for m in messages)
        assert any("2/3 frames usable" in m for m in messages)

    def test_stack_as_fits_is_channel_first(self, session):
        stacker, paths = session
        output_name, _ = stacker.stack_images(paths[:2], merge_method="median", output_format="fits")
        with fits.open(stacker.session_output_dir / output_name) as hdul:
            assert hdul[0].data.shape == (3, 80, 80)

    def test_align_images_reports_every_frame(self, session):
        stacker, paths = session
        report = stacker.align_images(paths)
        assert [entry["index"] for entry in report] == [0, 1, 2]
        assert report[0]["offset"] == {"x": 0, "y": 0, "rotation_degrees": 0.0}
        assert report[1]["difference_image"] == "difference_frame_2.png"
        assert (stacker.session_output_dir / "difference_frame_2.png").exists()
        assert 0.0 <= report[1]["difference_ratio"] <= 1.0
        assert report[2]["error"] is not None
        assert report[2]["difference_image"] is None

    @pytest.mark.parametrize("kwargs", [
        {"output_format": "bmp"},
        {"merge_method": "sigma_clip"},
    ])
    def test_rejects_unknown_options(self, session, kwargs):
        stacker, paths = session
        with pytest.raises(ValueError):
            stacker.stack_images(paths, **kwargs)

    def test_no_frames(self, session):
        stacker, _ = session
        with pytest.raises(ValueError):
            stacker.stack_images([])

    def test_directory_expands_to_its_frames(self, session):
        stacker, paths = session
        frames_dir = paths[0].parent / "lights"
        frames_dir.mkdir()
        for path in paths[:2]:
            path.rename(frames_dir / path.name)

        output_name, _ = stacker.stack_images([frames_dir], merge_method="average")
        assert (stacker.session_output_dir / output_name).exists()
        messages = [entry["message"] for entry in stacker.log_buffer.get_logs()]
        assert "Loading 2 light frames..." in messages
        assert any("2/2 frames usable" in m for m in messages)

    def test_supersample_doubles_the_result(self, session):
        stacker, paths = session
        stacker.star_aligner = StarAligner(half_window=5, max_rotation=1, max_workers=1)
        output_name, _ = stacker.stack_images(paths[:2], merge_method="average", supersample=True)
        result = FileLoader().load_image(stacker.session_output_dir / output_name)
        assert result.shape == (160, 160, 3)

    def test_optional_steps_run_in_order(self, session):
        stacker, paths = session
        stacker.stack_images(
            paths[:2], merge_method="average",
            denoise=True, remove_light_pollution=True, white_balance=True
        )
        messages = [entry["message"] for entry in stacker.log_buffer.get_logs()]
        steps = ["Removing hot pixels...", "Removing light pollution (mask from the reference frame)...",
                 "Aligning light frames...", "Merging aligned frames (average)...",
                 "Applying gray world white balance..."]
        positions = [messages.index(step) for step in steps]
        assert positions == sorted(positions)

    def test_optional_steps_can_be_disabled(self, session):
        stacker, paths = session
        stacker.stack_images(paths[:2], remove_light_pollution=False)
        messages = [entry["message"] for entry in stacker.log_buffer.get_logs()]
        assert not any("light pollution" in m for m in messages)
        assert not any("hot pixels" in m for m in messages)
        assert not any("white balance" in m for m in messages)
