import os
from setuptools import setup, Extension
from Cython.Build import cythonize

macros, compiler_directives = \
    ([('CYTHON_TRACE', '1')], {'linetrace': True}) if os.environ.get('BYTES_INFLATE_CODE_COVERAGE') == '1' else \
    ([], {})

print('Building...')
print('macros:', macros)
print('compiler_directives:', compiler_directives)

setup(
    ext_modules=cythonize([Extension(
        "bytes_inflate",
        ["bytes_inflate.py"],
        define_macros=macros,
    )], compiler_directives=compiler_directives),
    # Kept in step with pyproject.toml
    name="bytes-inflate",
    version="0.0.0.dev0",
    extras_require={
        'dev': [
            "coverage>=6.2",
            "pytest>=6.2.5",
            "pytest-cov>=3.0.0",
            "Cython>=3.0.0",
            "setuptools",
            "build",
        ],
        'test': [
            "coverage>=6.2",
            "pytest>=6.2.5",
            "pytest-cov>=3.0.0",
        ],
    },
    py_modules=[
        'bytes_inflate',
    ],
)
