#!/usr/bin/env python3
"""CLI interface for cbir."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

import cv2
import numpy as np

from .config import Config
from .database import FeatureStore, extract_directory
from .errors import InvalidParameterError, ResourceUnavailableError, RetrievalError
from .features import load_image
from .kmeans import posterize
from .search import PIPELINES, Retriever, parse_mode

logger = logging.getLogger(__name__)


def _mode_arg(value: str) -> str:
    try:
        return parse_mode(value)
    except InvalidParameterError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        msg = f"not an integer: {value!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if number < 1:
        msg = f"must be >= 1, got {number}"
        raise argparse.ArgumentTypeError(msg)
    return number


def cmd_search(args: argparse.Namespace) -> int:
    cfg = Config(top_n=args.top_n, show_progress=not args.no_progress)

    stores: dict[str, FeatureStore] = {}
    if args.embeddings:
        stores["embedding"] = FeatureStore.load(args.embeddings)
    if args.features:
        if args.mode == "baseline":
            stores["patch"] = FeatureStore.load(args.features)
        else:
            logger.warning(f"--features is only used in baseline mode, ignoring {args.features}")

    retriever = Retriever(cfg, args.mode, stores)
    matches = retriever.search(args.target, args.dir, args.top_n)

    direction = "higher" if PIPELINES[args.mode].higher_is_better else "lower"
    print(f"\nTop {len(matches)} matches ({args.mode}, {direction} is more similar):")
    for i, match in enumerate(matches, start=1):
        print(f"{i:02d}. {match.identifier}: {match.score:.6f}")
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    cfg = Config(show_progress=not args.no_progress)
    if args.output:
        cfg.features_csv = Path(args.output)
    written = extract_directory(args.directory, cfg.features_csv, cfg, reset=not args.append)
    print(f"Wrote {written} feature vectors to {cfg.features_csv}")
    return 0


def cmd_kmeans(args: argparse.Namespace) -> int:
    cfg = Config(max_iterations=args.max_iterations, stop_thresh=args.stop_thresh)
    cfg.validate()

    image_path = Path(args.image)
    img = load_image(image_path)

    quantized, result = posterize(
        img,
        args.k,
        max_iterations=cfg.max_iterations,
        stop_thresh=cfg.stop_thresh,
        rng=np.random.default_rng(args.seed),
    )

    output = Path(args.output) if args.output else image_path.with_name(
        f"{image_path.stem}_{args.k}_kmeans{image_path.suffix}"
    )
    try:
        written = cv2.imwrite(str(output), quantized)
    except cv2.error as e:
        msg = f"Cannot write image {output}: {e}"
        raise ResourceUnavailableError(msg) from e
    if not written:
        msg = f"Cannot write image: {output}"
        raise ResourceUnavailableError(msg)

    print(f"Cluster means (BGR) after {result.iterations} iterations:")
    for idx, mean in enumerate(result.means):
        print(f"  {idx}: {tuple(int(v) for v in mean)}")
    print(f"Saved {output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Content-based image retrieval with histograms, patches and embeddings",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--no-progress", action="store_true",
                        help="Disable progress bars")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # search
    p_search = subparsers.add_parser(
        "search", help="Rank a corpus by similarity to a target image",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p_search.add_argument("target", type=str, help="Path to the target image")
    p_search.add_argument("--mode", type=_mode_arg, default="rg",
                          help=f"Retrieval mode: {', '.join(PIPELINES)} "
                               "(or 0=rg, 1=hsv, 2=color, 3=color_texture)")
    p_search.add_argument("--top-n", type=_positive_int, default=3,
                          help="Number of matches to print")
    p_search.add_argument("--dir", type=str, default=None,
                          help="Corpus image directory")
    p_search.add_argument("--features", type=str, default=None,
                          help="Baseline feature vector CSV (baseline mode only; "
                               "replaces the directory scan)")
    p_search.add_argument("--embeddings", type=str, default=None,
                          help="CSV of precomputed deep-network embeddings "
                               "(required by dnn and cbir modes)")
    p_search.set_defaults(func=cmd_search)

    # extract
    p_extract = subparsers.add_parser(
        "extract", help="Write baseline feature vectors of a directory to CSV",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p_extract.add_argument("directory", type=str, help="Corpus image directory")
    p_extract.add_argument("--output", type=str, default=None,
                           help=f"Feature vector CSV to write (default: {Config().features_csv})")
    p_extract.add_argument("--append", action="store_true",
                           help="Append to the CSV instead of starting a new one")
    p_extract.set_defaults(func=cmd_extract)

    # kmeans
    p_kmeans = subparsers.add_parser(
        "kmeans", help="Posterize an image with K-means color clustering",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    p_kmeans.add_argument("image", type=str, help="Path to the input image")
    p_kmeans.add_argument("k", type=_positive_int, help="Number of colors")
    p_kmeans.add_argument("--max-iterations", type=_positive_int, default=Config.max_iterations,
                          help="Maximum number of E-M iterations")
    p_kmeans.add_argument("--stop-thresh", type=int, default=Config.stop_thresh,
                          help="Stop when the summed squared mean shift is at most this")
    p_kmeans.add_argument("--seed", type=int, default=None,
                          help="Random seed for the initial comb offset")
    p_kmeans.add_argument("--output", type=str, default=None,
                          help="Output image path (default: <stem>_<k>_kmeans<ext>)")
    p_kmeans.set_defaults(func=cmd_kmeans)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point for cbir.

    Returns:
        Process exit status: 0 on success, 1 when retrieval fails.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        return args.func(args)
    except RetrievalError as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
