from .step_10_validate_image import ValidateImageStep
from .step_20_grow_image import GrowImageStep
from .step_30_attach_loop import AttachLoopStep
from .step_40_resize_fs import ResizeFilesystemStep
from .step_50_mount_root import MountRootStep
from .step_60_mount_efi import MountEfiStep
from .step_70_resolv_conf import PrepareResolvConfStep
from .step_80_bind_mounts import BindMountsStep
from .step_90_inject_interpreter import InjectInterpreterStep

__all__ = [
    "ValidateImageStep",
    "GrowImageStep",
    "AttachLoopStep",
    "ResizeFilesystemStep",
    "MountRootStep",
    "MountEfiStep",
    "PrepareResolvConfStep",
    "BindMountsStep",
    "InjectInterpreterStep",
]
