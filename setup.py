from setuptools import setup, find_packages

setup(
    name="mklein",
    version="1.0.0",
    description="An MLX implementation of the FLUX.2 klein 4B text-to-image pipeline.",
    long_description=open('README.md').read(),
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires='>=3.11',
    install_requires=[
        'mlx>=0.26.0; sys_platform == "darwin"',
        'mlx[cpu]>=0.26.0; sys_platform == "linux"',
        'numpy>=2.0.0',
        'pillow>=10.4.0',
        'transformers>=4.51.0',
        'jinja2>=3.1.0',
        'tqdm>=4.66.5',
        'huggingface-hub>=0.24.5',
        'safetensors>=0.4.4',
        'piexif>=1.1.3',
        'platformdirs>=4.0.0',
    ],
    extras_require={
        "test": [
            'pytest>=8.0.0',
        ],
    },
)
