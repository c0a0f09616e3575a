"""
Rough print time, material and cost estimates for a dot pattern.
"""

from dataclasses import dataclass
from typing import Any, Dict

from dotmesh.config import GenerationParams

PRINT_SPEED = 50.0  # mm³/min
MATERIAL_DENSITY = 1.25  # g/mL, PLA
COST_PER_GRAM = 0.05  # $


@dataclass(frozen=True)
class PrintEstimate:
    """Estimated volume, print time, material weight and cost."""

    volume: float  # mm³
    print_minutes: float
    material_grams: float
    cost: float

    @property
    def volume_ml(self) -> float:
        return self.volume / 1000

    @property
    def print_time(self) -> str:
        hours = self.print_minutes / 60
        if hours > 1:
            return f"{hours:.1f} hours"
        return f"{self.print_minutes:.0f} minutes"

    @property
    def material(self) -> str:
        return f"{self.material_grams:.1f}g ({self.volume_ml:.1f}mL)"

    @property
    def cost_text(self) -> str:
        return f"${self.cost:.2f}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "estimatedPrintTime": self.print_time,
            "estimatedMaterial": self.material,
            "estimatedCost": self.cost_text,
            "volume": self.volume,
            "printMinutes": self.print_minutes,
            "materialGrams": self.material_grams,
            "cost": self.cost,
        }


def calculate_print_estimates(pattern, params: GenerationParams) -> PrintEstimate:
    """
    Estimate print time and material from the solid volume.

    Args:
        pattern: DotPattern to print
        params: Generation parameters

    Returns:
        PrintEstimate
    """
    pattern.validate()
    cube_volume = params.cube_size ** 2 * params.cube_height
    volume = pattern.active_count * cube_volume

    if params.generate_base:
        base_width = pattern.width * params.pitch + params.cube_size
        base_depth = pattern.height * params.pitch + params.cube_size
        volume += base_width * base_depth * params.base_thickness

    grams = volume / 1000 * MATERIAL_DENSITY
    return PrintEstimate(
        volume=volume,
        print_minutes=volume / PRINT_SPEED,
        material_grams=grams,
        cost=grams * COST_PER_GRAM,
    )
