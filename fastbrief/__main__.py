"""Camera-to-display demo loop.

    python -m fastbrief 0                 # camera index 0
    python -m fastbrief clip.mp4 --no-display --frames 300
"""

from __future__ import annotations

import argparse
import logging
import time

import cv2

from .params import FastBriefParams
from .pipeline import FastBrief
from .visualize import draw_matches_side_by_side

logger = logging.getLogger("fastbrief")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fastbrief", description="FAST/BRIEF keyframe matching on the GPU"
    )
    parser.add_argument("source", nargs="?", default="0", help="camera index or video path")
    parser.add_argument("--max-features", type=int, default=1 << 14)
    parser.add_argument("--max-matches", type=int, default=1 << 14)
    parser.add_argument("--keyframe-at", type=int, default=100)
    parser.add_argument("--frames", type=int, default=0, help="stop after N frames (0: run to end)")
    parser.add_argument("--graph", action="store_true", help="replay ticks as CUDA graphs")
    parser.add_argument("--no-display", action="store_true")
    parser.add_argument("--side-by-side", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    source = int(args.source) if args.source.isdigit() else args.source
    cap = cv2.VideoCapture(source)
    ok, bgr = cap.read()
    if not ok:
        logger.error("could not read a frame from %s", args.source)
        return 1

    h, w = bgr.shape[:2]
    params = FastBriefParams(
        image_size=(w, h),
        max_features=args.max_features,
        max_matches=args.max_matches,
    )
    pipeline = FastBrief(params, use_graph=args.graph)
    logger.info("frame size %dx%d, graph replay %s", w, h, "on" if args.graph else "off")

    display = not args.no_display
    keyframe = None
    keyframe_rgba = None
    frame_count = 0
    t0 = time.perf_counter()
    record_requested = False

    while ok:
        rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
        record = record_requested or frame_count == args.keyframe_at
        record_requested = False

        result = pipeline.compute(rgba, record_keyframe=record, download_visualization=display)
        if record:
            keyframe, keyframe_rgba = result, rgba
            logger.info("recorded keyframe at frame %d", frame_count)

        if frame_count % 30 == 0:
            fps = (frame_count + 1) / (time.perf_counter() - t0)
            logger.info(
                "frame %d: %d keypoints, %d matches, %.1f fps",
                frame_count,
                result.num_keypoints,
                result.num_matches,
                fps,
            )

        if display:
            if args.side_by_side and keyframe is not None:
                pts1, pts2 = result.matched_points(keyframe)
                view = draw_matches_side_by_side(keyframe_rgba, rgba, pts1, pts2)
            else:
                view = cv2.cvtColor(result.visualization, cv2.COLOR_RGBA2BGR)
            cv2.imshow("fastbrief", view)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("k"):
                record_requested = True

        frame_count += 1
        if args.frames and frame_count >= args.frames:
            break
        ok, bgr = cap.read()

    cap.release()
    if display:
        cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
