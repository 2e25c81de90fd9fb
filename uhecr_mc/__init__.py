"""
UHECR_MC: stochastic interactions of ultra-high-energy cosmic-ray nuclei

Monte Carlo propagation core for nuclei travelling through extragalactic
photon backgrounds.

Modules:
    core: Units, particle and candidate state, configuration, errors
    physics: Photon backgrounds, photopion cross section, photon sampling,
             photodisintegration
    transport: Modules, propagation and the interaction scheduler
"""

__version__ = "0.1.0"

from uhecr_mc.core.particle import Candidate, ParticleState, nucleus_id
from uhecr_mc.core.config import SimulationConfig, build_scheduler
from uhecr_mc.physics.photon_background import BlackbodyPhotonField, TabularPhotonField
from uhecr_mc.physics.photon_sampling import PhotonFieldSampler
from uhecr_mc.physics.photodisintegration import PhotoDisintegration
from uhecr_mc.transport.scheduler import InteractionScheduler

__all__ = [
    "Candidate",
    "ParticleState",
    "nucleus_id",
    "SimulationConfig",
    "build_scheduler",
    "BlackbodyPhotonField",
    "TabularPhotonField",
    "PhotonFieldSampler",
    "PhotoDisintegration",
    "InteractionScheduler",
]
