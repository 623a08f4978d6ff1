# armorsight

Armor plate detection, tracking and aiming for robot vision. It is written in pure
Python on top of NumPy. It takes an RGB camera frame, finds the armor plates in it,
follows a target from frame to frame and works out a gimbal command.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Modules

- `armorsight.geometry` holds the planar helpers: `Rect` (with `contains`),
  `RotatedRect` (with `corners`), `convex_hull`, `min_area_rect` and `bounding_rect`.
- `armorsight.types` holds the value types:
  - `EnemyColor` and `ArmorType`, with `armor_type_to_string`.
  - `CameraIntrinsics`, whose `to_matrix` gives the 3×3 camera matrix.
  - `Light`, built from a contour with `Light.from_contour`.
  - `Armor`, built from two lights with `Armor.from_lights`. `Armor.landmarks` gives its
    six image landmarks.
  - `build_object_points(width, height)` gives the six matching object points. The plate
    sizes are the constants `SMALL_ARMOR_WIDTH`, `LARGE_ARMOR_WIDTH` and so on.
- `armorsight.detector` finds plates in a frame. `Detector.detect(image)` runs the stages
  below in order:
  1. It converts the image to grey and thresholds it at `binary_thres` (`preprocess_image`).
  2. It finds the external contours (`find_external_contours`) and keeps those that form
     light bars (`find_lights`, `is_light`). Each light's colour is set from its red and
     blue sums.
  3. It pairs lights of `detect_color` into `Armor` plates (`match_lights`, `contain_light`,
     `is_armor`).

  `LightParams` and `ArmorParams` hold the limits for each check. After every call,
  `debug_lights` and `debug_armors` list what was measured, as `DebugLight` and
  `DebugArmor` records. `all_numbers_image` stacks the number patches of the plates found.
- `armorsight.classifier` reads the number on a plate. `NumberClassifier.extract_number`
  warps the plate and takes a 28×28 binarised patch from it. `classify` runs your model on
  that patch and sets `number`, `confidence` and `classification_result`.
  `erase_ignore_classes` removes these plates:
  - plates whose confidence is below the threshold;
  - plates whose class is in the ignored list;
  - plates whose class does not fit the plate size.

  `NumberClassifier.from_label_file` reads the class names from a text file, one name per
  line. The image helpers used here are public too: `perspective_transform`,
  `warp_perspective`, `rgb_to_gray` and `otsu_threshold`.
- `armorsight.corner_corrector` refines the ends of each light. `LightCornerCorrector`
  finds the bar's symmetry axis by principal component analysis (`find_symmetry_axis`,
  which returns a `SymmetryAxis`). It then searches along that axis for the sharpest drop
  in brightness (`find_corner`).
- `armorsight.motion_model` is the spinning-target model for a Kalman filter. The state is
  `(xc, v_xc, yc, v_yc, za, v_za, yaw, v_yaw, r)` and the measurement is
  `(xa, ya, za, yaw)`. The module provides:
  - `transition` and `transition_jacobian`;
  - `observe` and `observation_jacobian`;
  - `process_noise` with `ProcessNoise`;
  - `measurement_noise` with `MeasurementNoise`.
- `armorsight.tracker` follows one robot. `Tracker.init` starts on the armor nearest the
  image centre. `Tracker.update` then predicts the state, matches the new
  `ArmorObservation`s and moves through `TrackerState`: LOST → DETECTING → TRACKING /
  TEMP_LOST. It also handles armor jumps on spinning targets. The thresholds are the
  attributes `tracking_thres` and `lost_thres`.
- `armorsight.solver` aims at the target. `Solver.solve(target, gimbal_rpy, elapsed)`:
  1. predicts where the `Target` will be after the flight time;
  2. picks the armor to shoot (`armor_positions`, `select_best_armor`);
  3. returns a `GimbalCmd` in degrees, with a fire advice.

  On fast spinners it switches between armor tracking and centre tracking (`SolverState`).
  It raises `ValueError` when the chosen armor is too close to the origin to aim at.
  `SolverParams` holds its settings.

## Detection example

```python
import numpy as np
from armorsight.detector import Detector, LightParams, ArmorParams
from armorsight.types import EnemyColor

detector = Detector(
    binary_thres=160,
    detect_color=EnemyColor.RED,
    light_params=LightParams(),
    armor_params=ArmorParams(),
    classifier=None,
    corner_corrector=None,
)
frame = np.zeros((480, 640, 3), dtype=np.uint8)  # an RGB image
for armor in detector.detect(frame):
    print(armor.type, armor.center, armor.landmarks())
```

The corner corrector only runs on plates that the classifier has seen. It has no effect
unless a `NumberClassifier` is attached as well.

## Tracking example

`Tracker` needs a filter that has `predict()`, `update(z)` and `set_state(x)`. You can
build one from `armorsight.motion_model`:

```python
import numpy as np
from armorsight import motion_model as mm
from armorsight.tracker import Tracker, ArmorObservation


class Ekf:
    def __init__(self, dt):
        self.dt = dt
        self.x = np.zeros(9)
        self.p = np.eye(9)

    def set_state(self, x):
        self.x = np.asarray(x, dtype=float)

    def predict(self):
        f = mm.transition_jacobian(self.x, self.dt)
        self.x = mm.transition(self.x, self.dt)
        self.p = f @ self.p @ f.T + mm.process_noise(self.dt)
        return self.x.copy()

    def update(self, z):
        h = mm.observation_jacobian(self.x)
        s = h @ self.p @ h.T + mm.measurement_noise(z)
        k = self.p @ h.T @ np.linalg.inv(s)
        self.x = self.x + k @ (z - mm.observe(self.x))
        self.p = (np.eye(9) - k @ h) @ self.p
        return self.x.copy()


tracker = Tracker(0.2, 1.0, Ekf(dt=0.01))
armors = [ArmorObservation(number="3", type="small", position=(3.0, 0.5, 0.1))]
tracker.init(armors)
tracker.update(armors)
print(tracker.tracker_state, tracker.target_state)
```

## What the package does not do

- It does not ship a number recognition model. `NumberClassifier` calls whatever model you
  give it: any callable that takes a `(1, 1, 28, 28)` float array and returns class scores.
- It does not include a Kalman filter class. `Tracker` drives a filter you supply.
- It does not include a ballistic model. `Solver` expects a compensator that provides
  `flying_time`, `compensate` and `trajectory`.
- It does not estimate plate pose (PnP or bundle adjustment). `Tracker` takes plate
  positions and orientations that have already been measured in the world frame.
- It does not do camera capture, messaging, frame transforms, visualisation or drawing,
  and it has no command-line tool.

## Tests

```
pytest
```