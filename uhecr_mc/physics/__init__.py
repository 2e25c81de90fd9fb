"""Physics module: Photon backgrounds, photopion sampling, photodisintegration."""

from uhecr_mc.physics.photon_background import (
    BlackbodyPhotonField,
    PhotonBackgroundModel,
    TabularPhotonField,
)
from uhecr_mc.physics.photon_sampling import PhotonFieldSampler
from uhecr_mc.physics.photodisintegration import PhotoDisintegration

__all__ = [
    "PhotonBackgroundModel",
    "TabularPhotonField",
    "BlackbodyPhotonField",
    "PhotonFieldSampler",
    "PhotoDisintegration",
]
