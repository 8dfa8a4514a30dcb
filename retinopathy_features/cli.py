"""
Batch feature extraction over a directory of fundus images.

For every image a ``<name>.txt`` feature log is written to the output
directory. Images whose log already exists are skipped, so an interrupted run
can simply be restarted.
"""

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional

from .detector import FeatureDetector
from .features import UNRATED
from .image_io import ImageLoadError, load_image, read_labels, save_image

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpeg", ".jpg", ".png", ".tif", ".tiff")


def setup_logging(level: int = logging.INFO):
    """Configure root logging with a timestamped format."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def list_images(input_dir: str) -> List[str]:
    return sorted(name for name in os.listdir(input_dir)
                  if name.lower().endswith(IMAGE_EXTENSIONS))


def output_name(image_name: str) -> str:
    return os.path.splitext(image_name)[0] + ".txt"


def run_batch(input_dir: str,
              output_dir: str,
              labels: Optional[Dict[str, str]] = None,
              start: int = 0,
              end: Optional[int] = None,
              write_images: bool = False,
              detector: Optional[FeatureDetector] = None) -> int:
    """
    Extract features for a slice of the images in ``input_dir``.

    Parameters
    ----------
    input_dir : str
        Directory holding the images
    output_dir : str
        Directory receiving the feature logs
    labels : dict, optional
        Image stem to severity label; missing images are unrated
    start, end : int
        Slice of the sorted image list to process
    write_images : bool
        Also write a vein/candidate overlay next to each log
    detector : FeatureDetector, optional
        Preconfigured detector

    Returns
    -------
    processed : int
        Number of images written in this run
    """
    detector = detector or FeatureDetector()
    labels = labels or {}
    os.makedirs(output_dir, exist_ok=True)

    images = list_images(input_dir)[start:end]
    processed = 0
    for index, image_name in enumerate(images, start=1):
        target = os.path.join(output_dir, output_name(image_name))
        if os.path.exists(target):
            logger.debug("Skipping %s, output exists", image_name)
            continue

        stem = os.path.splitext(image_name)[0]
        try:
            image = load_image(os.path.join(input_dir, image_name))
        except ImageLoadError as exc:
            logger.warning("Skipping %s: %s", image_name, exc)
            continue

        result = detector.compute_features(image, labels.get(stem, UNRATED),
                                           name=stem, visualize=write_images)
        result.features.write(target)
        if write_images:
            save_image(os.path.join(output_dir, stem + "_features.png"), result.visualization)
        processed += 1
        print(f"[{index}/{len(images)}] {image_name}: {len(result.features)} features")

    return processed


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description='Fundus image feature extraction',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract features for every image of a directory
  retinopathy-features --input train --output features

  # Attach severity labels and process the first 100 images
  retinopathy-features -i train -o features --labels trainLabels.csv --end 100
"""
    )

    parser.add_argument('--input', '-i', type=str, required=True,
                        help='Directory with the input images')
    parser.add_argument('--output', '-o', type=str, default='features',
                        help='Output directory (default: features)')
    parser.add_argument('--labels', '-l', type=str, default=None,
                        help='CSV with image,level rows (default: all unrated)')
    parser.add_argument('--start', type=int, default=0,
                        help='Index of the first image to process (default: 0)')
    parser.add_argument('--end', type=int, default=None,
                        help='Index after the last image to process (default: all)')
    parser.add_argument('--boundary-thickness', type=int, default=30,
                        help='Dilation passes of the black border (default: 30)')
    parser.add_argument('--min-vein-length', type=int, default=30,
                        help='Minimal length of a free-ended vein (default: 30)')
    parser.add_argument('--write-images', action='store_true',
                        help='Also write an overlay image per input')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not os.path.isdir(args.input):
        print(f"Error: {args.input} is not a directory")
        sys.exit(1)

    detector = FeatureDetector(
        boundary_thickness=args.boundary_thickness,
        minimal_vein_length=args.min_vein_length
    )
    labels = read_labels(args.labels) if args.labels else None
    processed = run_batch(args.input, args.output, labels, args.start, args.end,
                          args.write_images, detector)
    print(f"\nDone: {processed} images processed.")


if __name__ == '__main__':
    main()
