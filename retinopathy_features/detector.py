"""
Fundus Feature Extraction Pipeline

Runs the full analysis of one fundus photograph:
1. Black border detection and eye radius estimate
2. Optic disc localisation (masked out afterwards)
3. Green channel blur and local-mean normalization
4. Intensity quantization, patch hierarchy and foreground rendering
5. Skeletonization and vein network statistics
6. Microaneurysm candidate statistics

Steps 3-6 run twice: with the normal and with the inverted level order, so
that both dark and bright structures become foreground patches. Vein
statistics come from the normal pass only.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
from typing import List, Optional

from .background import BackgroundModeler
from .features import UNRATED, FeatureLog
from .filters import BLUR_KERNEL, convolve
from .microaneurysms import MicroaneurysmAnalyzer, MicroaneurysmCandidate, draw_candidates
from .optic_disc import OpticDisc, OpticDiscLocator
from .patches import PatchForest, PatchHierarchyBuilder, render_foreground
from .quantize import NUM_COLORS, reduce_colours
from .skeleton import Skeletonizer
from .veins import VeinNetwork, VeinNetworkExtractor, render_veins

logger = logging.getLogger(__name__)

GREEN = 1


@dataclass
class PassResult:
    """Intermediate products of one orientation pass."""
    inverse: bool
    forest: PatchForest
    skeleton: np.ndarray
    candidates: List[MicroaneurysmCandidate] = field(default_factory=list)
    network: Optional[VeinNetwork] = None


@dataclass
class FeatureExtractionResult:
    """Everything produced for one image."""
    features: FeatureLog
    non_eye: np.ndarray
    eye_radius: int
    optic_disc: Optional[OpticDisc]
    passes: List[PassResult] = field(default_factory=list)
    visualization: Optional[np.ndarray] = None


class FeatureDetector:
    """
    Complete feature extraction pipeline.

    Combines background modelling, optic disc search, patch analysis,
    skeletonization and vein analysis.
    """

    def __init__(self,
                 # Background parameters
                 foreground_threshold: int = 45,
                 boundary_thickness: int = 30,
                 median_value: int = 150,
                 window_scale: float = 70,
                 reference_radius: float = 1400,
                 # Patch parameters
                 num_levels: int = NUM_COLORS,
                 max_patch_area: int = 1_000_000,
                 curvature_threshold: float = 0.3,
                 # Vein parameters
                 noise_removal_iterations: int = 2,
                 minimal_vein_length: int = 30):
        """
        Initialize the detector with all parameters.

        ``window_scale`` is the normalization half-window at the reference eye
        radius of ``reference_radius`` pixels; all size thresholds scale with
        ``eye_radius / reference_radius``. See component classes for the other
        parameters.
        """
        self.median_value = median_value
        self.window_scale = window_scale
        self.reference_radius = reference_radius
        self.num_levels = num_levels

        self.background_modeler = BackgroundModeler(
            foreground_threshold=foreground_threshold,
            boundary_thickness=boundary_thickness
        )
        self.optic_disc_locator = OpticDiscLocator()
        self.patch_builder = PatchHierarchyBuilder(max_area=max_patch_area)
        self.skeletonizer = Skeletonizer()
        self.vein_extractor = VeinNetworkExtractor(
            noise_removal_iterations=noise_removal_iterations,
            minimal_vein_length=minimal_vein_length
        )
        self.microaneurysm_analyzer = MicroaneurysmAnalyzer(
            curvature_threshold=curvature_threshold,
            num_levels=num_levels
        )

    def compute_features(self, image: np.ndarray, rating: str = UNRATED,
                         name: Optional[str] = None,
                         visualize: bool = False) -> FeatureExtractionResult:
        """
        Extract the feature log of one image.

        Parameters
        ----------
        image : np.ndarray
            RGB image of shape (H, W, 3)
        rating : str
            Severity label of the image, or the unrated sentinel
        name : str, optional
            Image identifier used in diagnostics
        visualize : bool
            Also build an overlay of veins and microaneurysm candidates

        Returns
        -------
        result : FeatureExtractionResult
        """
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError(f"Expected an RGB image of shape (H, W, 3), got {image.shape}")
        grid = image.astype(np.int16)
        height, width = grid.shape[:2]

        features = FeatureLog(name)
        features.add("RATING", rating)
        features.add_separator()

        background = self.background_modeler.find_black_background(grid)
        non_eye = background.mask
        non_eye_pixels = max(1, background.background_pixels)
        features.set_eye_radius(background.eye_radius)

        disc = self.optic_disc_locator.locate(grid, background.eye_radius, non_eye)
        blurred = convolve(grid, BLUR_KERNEL, GREEN)

        scaling = background.eye_radius / self.reference_radius
        box_size = max(1, int(self.window_scale * scaling))
        eye_pixels = max(height * width - non_eye_pixels, 1)

        result = FeatureExtractionResult(features=features, non_eye=non_eye,
                                         eye_radius=background.eye_radius,
                                         optic_disc=disc)
        for inverse in (False, True):
            normalised = self.background_modeler.subtract_background(
                blurred, self.median_value, box_size, GREEN)
            labels = reduce_colours(normalised, inverse, self.num_levels)
            forest = self.patch_builder.construct(labels)
            skeleton = self.skeletonizer.produce_skeleton(
                render_foreground(forest, self.num_levels), non_eye)

            network = None
            if not inverse:
                network = self.vein_extractor.analyze(skeleton, features, eye_pixels, scaling)
            candidates = self.microaneurysm_analyzer.find_microaneurysms(
                forest, non_eye, scaling, features)
            result.passes.append(PassResult(inverse=inverse, forest=forest, skeleton=skeleton,
                                            candidates=candidates, network=network))
            logger.debug("Pass %s: %d patches, %d candidates",
                         "inverted" if inverse else "normal", len(forest), len(candidates))

        if visualize:
            result.visualization = self._overlay(result)
        logger.info("Extracted %d features (eye radius %d)%s", len(features),
                    background.eye_radius, f" for {name}" if name else "")
        return result

    @staticmethod
    def _overlay(result: FeatureExtractionResult) -> np.ndarray:
        """Vein network of the normal pass with all candidate outlines on top."""
        shape = result.non_eye.shape
        network = result.passes[0].network
        overlay = render_veins(shape, network.veins if network else [])
        for pass_result in result.passes:
            draw_candidates(overlay, pass_result.forest, pass_result.candidates)
        return overlay


def extract_features(image: np.ndarray, rating: str = UNRATED, **kwargs) -> FeatureLog:
    """
    Convenience function for quick feature extraction.

    Parameters
    ----------
    image : np.ndarray
        RGB fundus image
    rating : str
        Severity label, or the unrated sentinel
    **kwargs
        Passed to ``FeatureDetector``

    Returns
    -------
    features : FeatureLog
    """
    return FeatureDetector(**kwargs).compute_features(image, rating).features
