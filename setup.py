from setuptools import setup, find_packages

setup(name='coswitch',
      version='0.0.1',
      description='Blocking-style coroutines with their own stacks, scheduled cooperatively on top of a host event loop',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Framework :: Trio",
      ],
      keywords='coroutine greenlet trio scheduler',
      license='MIT',
      packages=find_packages(include=['coswitch', 'coswitch.*']),
      python_requires='>=3.11',
      install_requires=['trio', 'outcome', 'greenlet'],
      extras_require={'test': ['pytest']},
      include_package_data=True,
)
