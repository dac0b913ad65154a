from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class UnsupportedOperationError(ValueError):
    """Raised when the requested operation has no transformation rule"""
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Unsupported operation: {operation}")


class BaseOperation(BaseModel):
    """Parameters shared by every operation"""
    model_config = ConfigDict(extra='ignore')

    generateThumbnail: bool = False
    generateWebP: bool = False

    def to_transformation(self) -> Dict[str, Any]:
        return {}


class ResizeOperation(BaseOperation):
    operation: Literal['resize']
    width: Optional[int] = None
    height: Optional[int] = None
    crop: Optional[str] = None

    def to_transformation(self) -> Dict[str, Any]:
        return {
            'width': self.width or 800,
            'height': self.height or 600,
            'crop': self.crop or 'fill'
        }


class CropOperation(BaseOperation):
    operation: Literal['crop']
    width: Optional[int] = None
    height: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None

    def to_transformation(self) -> Dict[str, Any]:
        return {
            'width': self.width,
            'height': self.height,
            'x': self.x or 0,
            'y': self.y or 0,
            'crop': 'crop'
        }


class RotateOperation(BaseOperation):
    operation: Literal['rotate']
    degrees: Optional[Union[int, float]] = None

    def to_transformation(self) -> Dict[str, Any]:
        return {'angle': self.degrees or 0}


class FilterOperation(BaseOperation):
    operation: Literal['filter']
    grayscale: bool = False
    sepia: bool = False
    blur: Optional[int] = None
    brightness: Optional[int] = None
    contrast: Optional[int] = None

    def effects(self) -> list:
        """Effect list in fixed order; only set flags contribute"""
        effects = []
        if self.grayscale:
            effects.append('grayscale')
        if self.sepia:
            effects.append('sepia')
        if self.blur:
            effects.append(f'blur:{self.blur}')
        if self.brightness:
            effects.append(f'brightness:{self.brightness}')
        if self.contrast:
            effects.append(f'contrast:{self.contrast}')
        return effects

    def to_transformation(self) -> Dict[str, Any]:
        return {'effect': ','.join(self.effects()) or 'grayscale'}


class WatermarkOperation(BaseOperation):
    operation: Literal['watermark']
    watermarkText: Optional[str] = None
    position: Optional[str] = None
    opacity: Optional[int] = None
    color: Optional[str] = None

    def to_transformation(self) -> Dict[str, Any]:
        return {
            'overlay': self.watermarkText or 'Sample Watermark',
            'gravity': self.position or 'south_east',
            'opacity': self.opacity or 60,
            'color': self.color or 'white'
        }


class BackgroundRemovalOperation(BaseOperation):
    operation: Literal['background_removal']

    def to_transformation(self) -> Dict[str, Any]:
        return {'background': 'remove'}


class AutoEnhanceOperation(BaseOperation):
    operation: Literal['auto_enhance']

    def to_transformation(self) -> Dict[str, Any]:
        return {'effect': 'auto_color', 'improve': 'auto'}


class FormatConversionOperation(BaseOperation):
    # Format is applied when the output is encoded
    operation: Literal['format_conversion']


Operation = Annotated[
    Union[
        ResizeOperation,
        CropOperation,
        RotateOperation,
        FilterOperation,
        WatermarkOperation,
        BackgroundRemovalOperation,
        AutoEnhanceOperation,
        FormatConversionOperation,
    ],
    Field(discriminator='operation')
]

SUPPORTED_OPERATIONS = (
    'resize',
    'crop',
    'rotate',
    'filter',
    'watermark',
    'background_removal',
    'auto_enhance',
    'format_conversion',
)

_operation_adapter = TypeAdapter(Operation)


def parse_operation(operation: str, params: Optional[Dict[str, Any]] = None) -> BaseOperation:
    """
    Parse an operation name and its params into a typed operation.

    Args:
        operation: Operation name (e.g. 'resize')
        params: Operation specific options from the request

    Returns:
        The matching operation model

    Raises:
        UnsupportedOperationError: If the operation name is not supported
        pydantic.ValidationError: If a parameter has the wrong type
    """
    if operation not in SUPPORTED_OPERATIONS:
        raise UnsupportedOperationError(operation)
    data = {key: value for key, value in (params or {}).items() if value is not None}
    data['operation'] = operation
    return _operation_adapter.validate_python(data)


def build_transformation(operation: BaseOperation, format: str = 'jpg', quality: Any = 'auto') -> Dict[str, Any]:
    """Build the Cloudinary transformation for an operation, with format and quality appended"""
    transformation = operation.to_transformation()
    transformation['format'] = format
    transformation['quality'] = quality
    return transformation
