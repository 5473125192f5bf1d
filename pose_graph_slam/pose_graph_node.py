#!/usr/bin/env python3
"""
ROS2 wrapper around the pose-graph SLAM core.

I/O only:
- Subscribe to /odom, /scan and /stop_slam
- Forward observations to ``Slam`` in arrival order
- Publish the optimized keyframe path, the assembled map and the robot pose
- On /stop_slam: run the offline optimization, republish, signal completion
"""

import math

import rclpy
from rclpy.node import Node

from geometry_msgs.msg import PoseStamped
from nav_msgs.msg import Odometry, Path
from sensor_msgs.msg import LaserScan as LaserScanMsg
from sensor_msgs.msg import PointCloud2
from sensor_msgs_py import point_cloud2
from std_msgs.msg import Empty, Header

from .config import SlamConfig
from .geometry import Pose2D, quat_to_yaw
from .point_cloud import LaserScan
from .slam import Slam


def pose_to_ros_pose_stamped(p: Pose2D, header: Header) -> PoseStamped:
    ps = PoseStamped()
    ps.header = header
    ps.pose.position.x = p.x
    ps.pose.position.y = p.y
    ps.pose.position.z = 0.0
    ps.pose.orientation.z = math.sin(p.angle / 2.0)
    ps.pose.orientation.w = math.cos(p.angle / 2.0)
    return ps


class PoseGraphSlamNode(Node):
    def __init__(self):
        super().__init__('pose_graph_slam')

        # Topics
        self.declare_parameter('odom_topic', '/odom')
        self.declare_parameter('scan_topic', '/scan')
        self.declare_parameter('stop_slam_topic', '/stop_slam')
        self.declare_parameter('map_frame', 'map')
        odom_topic = self.get_parameter('odom_topic').value
        scan_topic = self.get_parameter('scan_topic').value
        stop_topic = self.get_parameter('stop_slam_topic').value
        self.map_frame = self.get_parameter('map_frame').value

        # Every SlamConfig field is a ROS parameter with the same name
        overrides = {}
        for name, default in SlamConfig().as_dict().items():
            value = list(default) if isinstance(default, tuple) else default
            self.declare_parameter(name, value)
            overrides[name] = self.get_parameter(name).value
        config = SlamConfig.from_dict(overrides)

        self.slam = Slam(config)

        # Publishers
        self.path_pub = self.create_publisher(Path, '/pose_graph/path_opt', 10)
        self.map_pub = self.create_publisher(PointCloud2, '/pose_graph/map', 1)
        self.pose_pub = self.create_publisher(PoseStamped, '/pose_graph/pose', 10)
        self.stop_done_pub = self.create_publisher(Empty, 'stopSlamComplete', 1)

        # Subscribers
        self.create_subscription(LaserScanMsg, scan_topic, self._on_scan, 50)
        self.create_subscription(Odometry, odom_topic, self._on_odom, 50)
        self.create_subscription(Empty, stop_topic, self._on_stop, 1)

        self.get_logger().info(
            f"Subscribed to odom={odom_topic}, scan={scan_topic}, stop={stop_topic}; "
            f"node thresholds: trans={config.trans_thresh_m} m, rot={config.rot_thresh_rad} rad"
        )

    def _on_odom(self, msg: Odometry):
        p = msg.pose.pose.position
        q = msg.pose.pose.orientation
        self.slam.observe_odometry((float(p.x), float(p.y)), quat_to_yaw(q.x, q.y, q.z, q.w))

    def _on_scan(self, msg: LaserScanMsg):
        scan = LaserScan(
            ranges=list(msg.ranges),
            range_min=float(msg.range_min),
            range_max=float(msg.range_max),
            angle_min=float(msg.angle_min),
            angle_max=float(msg.angle_max),
        )
        node = self.slam.observe_laser(scan)
        self._publish_pose()
        if node is not None:
            self._publish_graph()

    def _on_stop(self, _msg: Empty):
        self.get_logger().info("Stop SLAM received; running offline optimization")
        if self.slam.stop_front_end():
            self.get_logger().info(f"Offline optimization done over {len(self.slam.graph)} nodes")
        self._publish_graph()
        self._publish_pose()
        self.stop_done_pub.publish(Empty())

    def _header(self) -> Header:
        header = Header()
        header.frame_id = self.map_frame
        header.stamp = self.get_clock().now().to_msg()
        return header

    def _publish_pose(self):
        loc, angle = self.slam.get_pose()
        pose = Pose2D(float(loc[0]), float(loc[1]), float(angle))
        self.pose_pub.publish(pose_to_ros_pose_stamped(pose, self._header()))

    def _publish_graph(self):
        # No keyframes, no path, return
        nodes = self.slam.get_nodes()
        if not nodes:
            return
        header = self._header()

        path = Path()
        path.header = header
        for _, pose in nodes:
            path.poses.append(pose_to_ros_pose_stamped(pose, header))
        self.path_pub.publish(path)

        points = [(float(x), float(y), 0.0) for x, y in self.slam.get_map()]
        self.map_pub.publish(point_cloud2.create_cloud_xyz32(header, points))


def main():
    rclpy.init()
    node = PoseGraphSlamNode()
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    node.destroy_node()
    rclpy.shutdown()

if __name__ == '__main__':
    main()
