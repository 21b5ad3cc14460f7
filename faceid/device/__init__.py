from faceid.device.camera import CameraConfig, CameraManager

__all__ = ["CameraConfig", "CameraManager"]
