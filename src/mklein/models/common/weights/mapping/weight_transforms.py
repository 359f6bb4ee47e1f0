import mlx.core as mx


class WeightTransforms:
    @staticmethod
    def transpose_conv2d_weight(tensor: mx.array) -> mx.array:
        # (out, in, kh, kw) -> (out, kh, kw, in)
        if len(tensor.shape) == 4:
            return tensor.transpose(0, 2, 3, 1)
        return tensor

    @staticmethod
    def squeeze_1x1_conv_to_linear(tensor: mx.array) -> mx.array:
        if len(tensor.shape) == 4 and tensor.shape[2:] == (1, 1):
            return mx.reshape(tensor, tensor.shape[:2])
        return tensor
