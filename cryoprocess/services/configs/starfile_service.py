# cryoprocess/services/configs/starfile_service.py

import starfile
import pandas as pd
from pathlib import Path
from typing import Dict, Optional, Union, Any


class StarfileService:
    def read(self, path: Union[str, Path]) -> Dict[str, Any]:
        if not Path(path).exists():
            raise FileNotFoundError(f"STAR file not found: {path}")
        return starfile.read(path, always_dict=True)

    def has_label(self, path: Union[str, Path], label: str) -> bool:
        """True if any block of the file carries `label`, as a key or loop column."""
        bare = label.lstrip("_")
        names = {bare, "_" + bare}
        for block in self.read(path).values():
            if isinstance(block, pd.DataFrame):
                if names.intersection(block.columns):
                    return True
            elif isinstance(block, dict):
                if names.intersection(block):
                    return True
        return False

    def first_value(self, path: Union[str, Path], label: str) -> Optional[str]:
        """Value of `label` in the first row of the first loop block carrying it."""
        bare = label.lstrip("_")
        for block in self.read(path).values():
            if not isinstance(block, pd.DataFrame) or block.empty:
                continue
            for name in (bare, "_" + bare):
                if name in block.columns:
                    return str(block[name].iloc[0])
        return None
