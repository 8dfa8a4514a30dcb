"""
Retinopathy Feature Extraction Library

Morphological features of retinal fundus photographs for diabetic-retinopathy
severity grading: black border and optic disc masking, a multi-level patch
hierarchy, skeleton-based vein network statistics and microaneurysm
candidates.

Usage:
    from retinopathy_features import FeatureDetector, load_image

    result = FeatureDetector().compute_features(load_image("eye.jpeg"), rating="2")
    result.features.write("eye.txt")
"""

from .background import BackgroundModeler, BackgroundModel
from .detector import (
    FeatureDetector,
    FeatureExtractionResult,
    PassResult,
    extract_features,
)
from .features import FeatureLog, UNRATED
from .filters import (
    BLUR_KERNEL,
    SOBEL_X,
    SOBEL_Y,
    convolve,
    convolve_normalized,
    gaussian_kernel,
    gradient_edges,
    grey_scale,
)
from .image_io import ImageLoadError, load_image, read_labels, save_image
from .microaneurysms import MicroaneurysmAnalyzer, MicroaneurysmCandidate
from .optic_disc import OpticDisc, OpticDiscLocator
from .patches import Patch, PatchArena, PatchForest, PatchHierarchyBuilder, render_foreground
from .quantize import NUM_COLORS, quantize_levels, reduce_colours, rgb_label
from .skeleton import Skeletonizer
from .veins import Vein, VeinFork, VeinNetwork, VeinNetworkExtractor, VeinStatus, VeinStrength
from .visualization import (
    show_microaneurysm_histogram,
    show_processing_stages,
    show_vein_network,
    vein_overlay,
)

__version__ = "1.0.0"

__all__ = [
    # Pipeline
    "FeatureDetector",
    "FeatureExtractionResult",
    "PassResult",
    "extract_features",
    # Stages
    "BackgroundModeler",
    "OpticDiscLocator",
    "PatchHierarchyBuilder",
    "Skeletonizer",
    "VeinNetworkExtractor",
    "MicroaneurysmAnalyzer",
    # Data classes
    "BackgroundModel",
    "OpticDisc",
    "Patch",
    "PatchArena",
    "PatchForest",
    "Vein",
    "VeinFork",
    "VeinNetwork",
    "VeinStatus",
    "VeinStrength",
    "MicroaneurysmCandidate",
    "FeatureLog",
    "UNRATED",
    # Filtering and quantization
    "BLUR_KERNEL",
    "SOBEL_X",
    "SOBEL_Y",
    "convolve",
    "convolve_normalized",
    "gaussian_kernel",
    "gradient_edges",
    "grey_scale",
    "NUM_COLORS",
    "quantize_levels",
    "reduce_colours",
    "rgb_label",
    "render_foreground",
    # Input/output
    "ImageLoadError",
    "load_image",
    "read_labels",
    "save_image",
    # Visualization
    "show_processing_stages",
    "show_vein_network",
    "show_microaneurysm_histogram",
    "vein_overlay",
]
