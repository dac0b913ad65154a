import io
import os
import re
import logging
import subprocess
import tempfile
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MAX_DIMENSION = 10000
MAX_ANGLE = 360
MAX_BLUR_RADIUS = 100

SUPPORTED_FORMATS = {'jpg', 'jpeg', 'png', 'webp', 'gif'}


class MagickError(Exception):
    """Custom exception for ImageMagick failures"""
    pass


class UnsupportedOperationError(ValueError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Unsupported operation: {operation}")


class MagickConfig(BaseModel):
    binary: str = Field(default_factory=lambda: os.getenv("MAGICK_BINARY", "magick"))
    timeout: float = Field(default_factory=lambda: float(os.getenv("MAGICK_TIMEOUT", "30")))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def format_number(value: float) -> str:
    """Render 90.0 as '90' and 1.5 as '1.5'"""
    return f'{value:g}'


class BaseOperation(BaseModel):
    model_config = ConfigDict(extra='ignore')

    # Output format used when the request does not name one
    default_format: ClassVar[str] = 'jpg'

    def arguments(self) -> List[str]:
        raise NotImplementedError


class ResizeOperation(BaseOperation):
    operation: Literal['resize']
    width: int = 800
    height: int = 600

    @field_validator('width', 'height')
    @classmethod
    def clamp_dimension(cls, value: int) -> int:
        return int(clamp(value, 1, MAX_DIMENSION))

    def arguments(self) -> List[str]:
        return ['-resize', f'{self.width}x{self.height}']


class RotateOperation(BaseOperation):
    operation: Literal['rotate']
    degrees: float = 0

    @field_validator('degrees')
    @classmethod
    def clamp_degrees(cls, value: float) -> float:
        return clamp(value, -MAX_ANGLE, MAX_ANGLE)

    def arguments(self) -> List[str]:
        return ['-rotate', format_number(self.degrees)]


class BlurOperation(BaseOperation):
    operation: Literal['blur']
    radius: float = 2

    @field_validator('radius')
    @classmethod
    def clamp_radius(cls, value: float) -> float:
        return clamp(value, 0, MAX_BLUR_RADIUS)

    def arguments(self) -> List[str]:
        return ['-blur', format_number(self.radius)]


class RemoveBackgroundOperation(BaseOperation):
    operation: Literal['remove-background']

    default_format: ClassVar[str] = 'png'

    def arguments(self) -> List[str]:
        # Makes near-white pixels transparent, then upscales and sharpens
        return [
            '-background', 'none',
            '-alpha', 'set',
            '-channel', 'A', '-evaluate', 'set', '0', '+channel',
            '-fuzz', '10%',
            '-transparent', 'white',
            '-filter', 'Lanczos',
            '-resize', '400%',
            '-unsharp', '0x0.75+0.75+0.008'
        ]


Operation = Annotated[
    Union[ResizeOperation, RotateOperation, BlurOperation, RemoveBackgroundOperation],
    Field(discriminator='operation')
]

SUPPORTED_OPERATIONS = ('resize', 'rotate', 'blur', 'remove-background')

_operation_adapter = TypeAdapter(Operation)


def parse_operation(operation: str, params: Optional[Dict[str, Any]] = None) -> BaseOperation:
    """
    Parse an operation name and its params into a typed operation.

    Raises:
        UnsupportedOperationError: If the operation name is not supported
        pydantic.ValidationError: If a parameter is not numeric
    """
    if operation not in SUPPORTED_OPERATIONS:
        raise UnsupportedOperationError(operation)
    data = {key: value for key, value in (params or {}).items() if value is not None}
    data['operation'] = operation
    return _operation_adapter.validate_python(data)


def get_content_type(format_str: str) -> str:
    """Get the correct content type for a given format"""
    format_map = {
        'jpg': 'image/jpeg',
        'jpeg': 'image/jpeg',
        'png': 'image/png',
        'webp': 'image/webp',
        'gif': 'image/gif'
    }
    return format_map.get(format_str.lower(), 'image/jpeg')


def build_command(binary: str, input_path: str, operation: BaseOperation, output_path: str) -> List[str]:
    """Build the ImageMagick argument vector"""
    return [binary, input_path, *operation.arguments(), output_path]


def run_command(command: List[str], timeout: float) -> None:
    """
    Run ImageMagick and wait for it to finish.

    Raises:
        MagickError: If the binary is missing, times out or exits non-zero
    """
    try:
        result = subprocess.run(command, capture_output=True, timeout=timeout)
    except FileNotFoundError:
        raise MagickError(f"ImageMagick is not installed: {command[0]} not found")
    except subprocess.TimeoutExpired:
        raise MagickError(f"ImageMagick timed out after {timeout} seconds")

    if result.returncode != 0:
        stderr = result.stderr.decode('utf-8', errors='replace').strip()
        raise MagickError(f"ImageMagick failed: {stderr}")


def _work_dir_prefix(request_id: Optional[str]) -> str:
    safe_id = re.sub(r'[^A-Za-z0-9-]', '', request_id or '')[:64]
    return f'magick-{safe_id}-' if safe_id else 'magick-'


def process_image(image_data: bytes, operation: BaseOperation, output_format: str,
                  config: MagickConfig, request_id: Optional[str] = None) -> bytes:
    """
    Apply one operation to an image with ImageMagick.

    Input and output files live in a temporary directory owned by this call,
    removed on every exit path.

    Args:
        image_data: Input image as bytes
        operation: Parsed operation
        output_format: Output file extension (jpg, png, webp, gif)
        config: ImageMagick binary and timeout
        request_id: Included in the temporary directory name

    Returns:
        Processed image as bytes
    """
    with tempfile.TemporaryDirectory(prefix=_work_dir_prefix(request_id)) as work_dir:
        input_path = os.path.join(work_dir, 'input')
        output_path = os.path.join(work_dir, f'output.{output_format}')

        with open(input_path, 'wb') as f:
            f.write(image_data)

        command = build_command(config.binary, input_path, operation, output_path)
        logger.info(f"Running ImageMagick: {' '.join(command)}")
        run_command(command, config.timeout)

        with open(output_path, 'rb') as f:
            return f.read()


def describe_image(image_data: bytes) -> Dict[str, Any]:
    """Read dimensions and format of an encoded image"""
    with Image.open(io.BytesIO(image_data)) as image:
        return {
            'width': image.width,
            'height': image.height,
            'format': (image.format or '').lower(),
            'size': len(image_data)
        }
