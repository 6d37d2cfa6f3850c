"""
Example: Unscented Measurement Updates with Intermittent Sensors

This script estimates the attitude and altitude of a climbing aircraft from
an accelerometer, a gyroscope and two pressure sensors that report at
different rates. Each cycle only the sensors that actually reported take part
in the update, using a dynamic measurement vector.

Run from repository root:
    python examples/example_air_data_update.py

Per cycle:
    1. PREDICT: push sigma points through the motion model, recover x̄ and P
    2. ACTIVATE: pick the sensors that reported this cycle
    3. PROPAGATE: ẑᵢ = h(χᵢ) for the active sensors only
    4. RECOVER: z̄, Pzz = Σ Wcᵢ δzᵢ δzᵢᵀ + R, Pxz = Σ Wcᵢ δxᵢ δzᵢᵀ
    5. UPDATE: K = Pxz Pzz⁻¹, x̄ ← x̄ ⊕ K (z ⊖ z̄), P ← P - K Pzz Kᵀ

Sensor rates:
    - Accelerometer, gyroscope: every cycle
    - Dynamic pressure: every 2nd cycle
    - Static pressure: every 5th cycle
"""

import time
from enum import Enum

import numpy as np
import matplotlib.pyplot as plt
import scipy.linalg
from tqdm import tqdm

from ukfcore.coords import quat_conjugate, quat_exp, quat_log, quat_multiply, quat_rotate
from ukfcore.estimators import (
    DynamicMeasurementVector,
    PredictionTable,
    SigmaPointDistribution,
    StateVector,
    compute_cross_covariance,
)
from ukfcore.fields import Field, Quaternion, Scalar, Vector


class StateField(Enum):
    VELOCITY = "velocity"
    ANGULAR_VELOCITY = "angular_velocity"
    ATTITUDE = "attitude"
    ALTITUDE = "altitude"


class SensorField(Enum):
    ACCELEROMETER = "accelerometer"
    GYROSCOPE = "gyroscope"
    STATIC_PRESSURE = "static_pressure"
    DYNAMIC_PRESSURE = "dynamic_pressure"


class AircraftState(StateVector):
    fields = (
        Field(StateField.VELOCITY, Vector(3)),
        Field(StateField.ANGULAR_VELOCITY, Vector(3)),
        Field(StateField.ATTITUDE, Quaternion()),
        Field(StateField.ALTITUDE, Scalar()),
    )


class AirDataSensors(DynamicMeasurementVector):
    fields = (
        Field(SensorField.ACCELEROMETER, Vector(3)),
        Field(SensorField.GYROSCOPE, Vector(3)),
        Field(SensorField.STATIC_PRESSURE, Scalar()),
        Field(SensorField.DYNAMIC_PRESSURE, Scalar()),
    )


GRAVITY = np.array([0.0, 0.0, -9.8])

SENSORS = PredictionTable(AirDataSensors, AircraftState, {
    SensorField.ACCELEROMETER:
        lambda x: quat_rotate(x.get_field(StateField.ATTITUDE), GRAVITY),
    SensorField.GYROSCOPE:
        lambda x: x.get_field(StateField.ANGULAR_VELOCITY),
    SensorField.STATIC_PRESSURE:
        lambda x: 101.3 - 1.2 * x.get_field(StateField.ALTITUDE) / 100.0,
    SensorField.DYNAMIC_PRESSURE:
        lambda x: 0.5 * 1.225 * float(np.sum(x.get_field(StateField.VELOCITY) ** 2)),
})

SENSOR_STD = {
    SensorField.ACCELEROMETER: 0.2,
    SensorField.GYROSCOPE: 0.01,
    SensorField.STATIC_PRESSURE: 0.05,
    SensorField.DYNAMIC_PRESSURE: 0.1,
}


def motion_model(x, dt):
    """Constant velocity and body rate."""
    x = x.copy()
    v = x.get_field(StateField.VELOCITY)
    w = x.get_field(StateField.ANGULAR_VELOCITY)
    q = x.get_field(StateField.ATTITUDE)
    x.set_field(StateField.ATTITUDE, quat_multiply(q, quat_exp(w * dt)))
    x.set_field(StateField.ALTITUDE, x.get_field(StateField.ALTITUDE) + v[2] * dt)
    return x


def active_sensors(step):
    active = [SensorField.ACCELEROMETER, SensorField.GYROSCOPE]
    if step % 2 == 0:
        active.append(SensorField.DYNAMIC_PRESSURE)
    if step % 5 == 0:
        active.append(SensorField.STATIC_PRESSURE)
    return active


def simulate(n_steps, dt, rng):
    """
    Generate the true trajectory and noisy sensor readings.

    Returns:
        Tuple of (true_states, readings), readings holding one
        AirDataSensors vector per step.
    """
    truth = AircraftState()
    truth.set_field(StateField.VELOCITY, [20.0, 0.0, 2.0])
    truth.set_field(StateField.ANGULAR_VELOCITY, [0.05, 0.02, 0.0])
    truth.set_field(StateField.ALTITUDE, 1000.0)

    true_states = []
    readings = []
    for step in range(n_steps):
        truth = motion_model(truth, dt)
        z = AirDataSensors(active_sensors(step))
        for label in z.active_fields:
            value = np.atleast_1d(SENSORS.predict(label, truth))
            noise = SENSOR_STD[label] * rng.standard_normal(value.shape)
            z.set_field(label, value + noise)
        true_states.append(truth)
        readings.append(z)

    return true_states, readings


def predict(x, P, Q, dt):
    sigma = x.generate_sigma_points(P)
    moved = SigmaPointDistribution.from_vectors(
        [motion_model(p, dt) for p in sigma], sigma.parameters
    )
    x_pred = x.recover_mean(moved)
    P_pred = x_pred.compute_covariance(x_pred.compute_deltas(moved), Q)
    return x_pred, P_pred


def update(x, P, z):
    sigma = x.generate_sigma_points(P)
    x_deltas = x.compute_deltas(sigma)

    z_sigma = z.propagate(sigma, SENSORS)
    z_mean = z.recover_mean(z_sigma)
    z_deltas = z_mean.compute_deltas(z_sigma)

    P_zz = z_mean.compute_covariance(z_deltas, z_mean.assemble_measurement_noise())
    P_xz = compute_cross_covariance(x_deltas, z_deltas)

    K = scipy.linalg.solve(P_zz, P_xz.T, assume_a="pos").T
    x_new = x.retract(K @ z.innovation(z_mean))
    P_new = P - K @ P_zz @ K.T
    return x_new, 0.5 * (P_new + P_new.T)


def attitude_error(q_est, q_true):
    return np.degrees(np.linalg.norm(quat_log(quat_multiply(quat_conjugate(q_true), q_est))))


def main():
    overall_start = time.time()

    print("=" * 70)
    print("UNSCENTED MEASUREMENT UPDATES WITH INTERMITTENT SENSORS")
    print("=" * 70)

    dt = 0.1
    n_steps = 200
    rng = np.random.default_rng(42)

    AirDataSensors.configure_noise({label: std**2 for label, std in SENSOR_STD.items()})

    print("\n--- Simulating flight ---")
    true_states, readings = simulate(n_steps, dt, rng)
    print(f"  Steps: {n_steps}, time step: {dt} s")
    print(f"  State dimension: {AircraftState.dimension()}")

    x = AircraftState()
    x.set_field(StateField.VELOCITY, [18.0, 0.0, 0.0])
    x.set_field(StateField.ALTITUDE, 950.0)
    x.set_field(StateField.ATTITUDE, quat_exp([0.2, -0.1, 0.0]))
    P = np.diag([4.0] * 3 + [0.01] * 3 + [0.05] * 3 + [2500.0])
    Q = np.diag([0.01] * 3 + [1e-5] * 3 + [1e-5] * 3 + [0.01])

    altitude = []
    attitude_errors = []
    sizes = []
    steps = zip(true_states, readings)
    for truth, z in tqdm(steps, total=n_steps, desc="UKF updates", unit="step"):
        x, P = predict(x, P, Q, dt)
        x, P = update(x, P, z)

        altitude.append((
            truth.get_field(StateField.ALTITUDE),
            x.get_field(StateField.ALTITUDE),
            np.sqrt(P[9, 9]),
        ))
        attitude_errors.append(attitude_error(
            x.get_field(StateField.ATTITUDE), truth.get_field(StateField.ATTITUDE)
        ))
        sizes.append(z.size())

    altitude = np.array(altitude)
    t = np.arange(1, n_steps + 1) * dt

    print("\n" + "=" * 70)
    print("RESULTS")
    print("=" * 70)
    print(f"  Final altitude error: {abs(altitude[-1, 1] - altitude[-1, 0]):.2f} m "
          f"(1-sigma {altitude[-1, 2]:.2f} m)")
    print(f"  Final attitude error: {attitude_errors[-1]:.3f} deg")

    fig, axes = plt.subplots(3, 1, figsize=(10, 10), sharex=True)

    ax = axes[0]
    ax.plot(t, altitude[:, 0], "k-", linewidth=2, label="True")
    ax.plot(t, altitude[:, 1], "g--", linewidth=2, label="UKF")
    ax.fill_between(t, altitude[:, 1] - 3 * altitude[:, 2], altitude[:, 1] + 3 * altitude[:, 2],
                    color="g", alpha=0.15, label="±3σ")
    ax.set_ylabel("Altitude [m]", fontsize=12)
    ax.set_title("Altitude Estimate", fontsize=14, fontweight="bold")
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)

    ax = axes[1]
    ax.plot(t, attitude_errors, "b-", linewidth=2)
    ax.set_ylabel("Attitude Error [deg]", fontsize=12)
    ax.set_title("Attitude Error", fontsize=14, fontweight="bold")
    ax.grid(True, alpha=0.3)

    ax = axes[2]
    ax.step(t, sizes, "m-", where="post", linewidth=2)
    ax.set_xlabel("Time [s]", fontsize=12)
    ax.set_ylabel("Measurement Size", fontsize=12)
    ax.set_title("Active Measurement Dimension", fontsize=14, fontweight="bold")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig("air_data_update.png", dpi=150, bbox_inches="tight")
    print("[OK] Plot saved as: air_data_update.png")
    plt.show()

    print(f"\nTotal execution time: {time.time() - overall_start:.2f} seconds")


if __name__ == "__main__":
    main()
