import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import dotenv_values


class EnvHandler:
    """
    Class to handle the environment variables for the project.
    """
    env: dict = {}

    def __init__(self):
        """
        Initialize the EnvHandler class.
        """
        self.env = {}

    @staticmethod
    def read_env(env_path: Optional[Union[Path, str]] = None) -> Dict[str, str]:
        """
        Read variables from a ``.env`` file merged with the process environment.

        Process environment variables win over file entries.

        :param env_path: ``.env`` file or the directory containing it.
        :type env_path: Path, optional
        :return: Merged variables.
        :rtype: dict
        """
        values: Dict[str, str] = {}
        if env_path is not None:
            env_file = Path(env_path)
            if env_file.is_dir():
                env_file = env_file / '.env'
            if env_file.exists():
                values.update(
                    {k: v for k, v in dotenv_values(env_file).items() if v is not None}
                )
        values.update(os.environ)
        return values

    def load_env(self, env_path: Optional[Union[Path, str]] = None) -> Dict[str, str]:
        """
        Load the environment variables from a file.

        :param env_path: Path to the environment file or its directory.
        :type env_path: Path
        """
        self.env = self.read_env(env_path)
        EnvHandler.env = self.env
        return self.env
