from setuptools import find_packages, setup

package_name = 'pose_graph_slam'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    data_files=[
        ('share/ament_index/resource_index/packages',
            ['resource/' + package_name]),
        ('share/' + package_name, ['package.xml']),
        ('share/' + package_name + '/launch', ['launch/pose_graph_slam.launch.py']),
    ],
    python_requires='>=3.8',
    install_requires=['setuptools', 'numpy', 'gtsam'],
    zip_safe=True,
    maintainer='matheus',
    maintainer_email='matheus.laranjeira@proton.me',
    description='Incremental 2D pose-graph SLAM front end (laser + odometry) on gtsam iSAM2',
    license='LGPL-3.0-only',
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'pose_graph_slam = pose_graph_slam.pose_graph_node:main',
        ],
    },
)
