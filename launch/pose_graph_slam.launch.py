from launch import LaunchDescription
from launch_ros.actions import Node


def generate_launch_description():
    return LaunchDescription([
        # Odometry node (RF2O)
        Node(
            package="rf2o_laser_odometry",
            executable="rf2o_laser_odometry_node",
            name="rf2o_laser_odometry",
            output="screen",
            parameters=[{"laser_scan_topic": "/scan",
                         "odom_topic": "/odom",
                         "publish_tf": True,
                         "base_frame_id": "base_link",
                         "odom_frame_id": "odom",
                         "init_pose_from_topic": "",
                         "freq": 20.0}],
        ),

        # Pose-graph SLAM
        Node(
            package="pose_graph_slam",
            executable="pose_graph_slam",
            name="pose_graph_slam",
            output="screen",
            parameters=[{"trans_thresh_m": 1.0,
                         "rot_thresh_rad": 0.5236,
                         "non_successive_constraints": True,
                         "max_non_successive_factors": 3,
                         "max_non_successive_distance": 1.5}],
        ),

        # Static TF base_link -> laser (scan points are shifted by laser_offset in the core)
        Node(
            package="tf2_ros",
            executable="static_transform_publisher",
            name="base_to_laser_tf",
            output="screen",
            arguments=["0.2", "0", "0", "0", "0", "0", "base_link", "laser"],
        ),
    ])
