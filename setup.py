import setuptools

# read the contents of your README file
from pathlib import Path
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setuptools.setup(
    name='abb_rws_telemetry',
    version='0.1.0',
    description='ABB Robot Web Services joint telemetry streaming client',
    packages=setuptools.find_packages("src"),
    package_dir={"" :"src"},
    python_requires='>=3.9',
    install_requires=[
        'RobotRaconteur',
        'numpy',
        'abb_robot_client==0.3.0',
        'httpx',
        'websockets>=13.0',
        'aioconsole'
    ],
    extras_require={
        'test': [
            'pytest'
        ]
    },
    entry_points={
        'console_scripts': [
            'abb-rws-telemetry=abb_rws_telemetry._cli:main'
        ]
    },
    long_description=long_description,
    long_description_content_type='text/markdown',
    zip_safe=False,
)
